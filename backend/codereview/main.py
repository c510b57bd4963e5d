import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from codereview.config import settings as app_settings
from codereview.database import create_tables
from codereview.routers import analysis, settings, llm
from codereview.services.orchestration import get_orchestration_service

logging.basicConfig(
    level=getattr(logging, app_settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
    datefmt="%H:%M:%S",
)
# Keep HTTP client noise at WARNING
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Create database tables
    await create_tables()
    logger.info(f"{app_settings.app_name} started")
    yield
    # Shutdown: stop analyses still running
    await get_orchestration_service().shutdown()


app = FastAPI(
    title="AI Code Reviewer",
    description="AI-assisted review of git diffs and source files with live progress",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(analysis.router, prefix="/api/analysis", tags=["Analysis"])
app.include_router(settings.router, prefix="/api/settings", tags=["Settings"])
app.include_router(llm.router, prefix="/api/llm", tags=["LLM"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "AI Code Reviewer"}
