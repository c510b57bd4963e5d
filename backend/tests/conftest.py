"""
Shared fixtures: in-memory database, fake AI provider, stub collaborators
and throw-away git repositories.
"""
import asyncio
import os
import shutil
import subprocess

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Must be set before codereview.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AI_API_KEY", "")

from codereview.database import Base
from codereview.models import settings_model  # noqa: F401
from codereview.services.analysis_cache import AnalysisCache
from codereview.services.background import BackgroundTaskRunner
from codereview.services.cache import TTLCache
from codereview.services.content_extraction import ExtractionResult
from codereview.services.orchestration import AnalysisOrchestrationService
from codereview.services.preferences import AICredentials, PreferenceStore
from codereview.services.progress import ProgressBroadcaster
from codereview.services.validation import ValidationOutcome

HANG = object()

SAMPLE_DIFF = """diff --git a/src/users.py b/src/users.py
--- a/src/users.py
+++ b/src/users.py
@@ -1,3 +1,4 @@
+query = "SELECT * FROM users WHERE id = " + user_id
"""

SAMPLE_REVIEW = """1. Critical: SQL injection in src/users.py line 1
Suggestion: use parameterized queries
2. Style: naming of `query` does not follow convention"""


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLM:
    """Stands in for LLMProviderService; behaviour configured per model."""

    def __init__(self, responses=None, default=SAMPLE_REVIEW):
        self.responses = responses or {}
        self.default = default
        self.calls = []
        self.prompts = []

    async def complete(self, system_prompt, prompt, model, api_key):
        self.calls.append(model)
        self.prompts.append((system_prompt, prompt))
        behaviour = self.responses.get(model, self.default)
        if behaviour is HANG:
            await asyncio.sleep(30)
        if isinstance(behaviour, BaseException):
            raise behaviour
        return behaviour


class StubExtractor:
    def __init__(self, result=None, exc=None):
        self.result = result or ExtractionResult(SAMPLE_DIFF, False, False, None)
        self.exc = exc
        self.calls = []

    async def extract(self, repository_path, target):
        self.calls.append((repository_path, target))
        if self.exc:
            raise self.exc
        return self.result


class StubDocuments:
    def __init__(self, documents=None):
        self.documents = documents if documents is not None else ["Use parameterized SQL."]

    async def load_many(self, names, folder):
        return list(self.documents)


class AcceptAll:
    def validate(self, context):
        return ValidationOutcome(True)


class RejectAll:
    def __init__(self, message="No coding standards selected"):
        self.message = message

    def validate(self, context):
        return ValidationOutcome(False, self.message)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    return AICredentials(
        provider_name="openrouter",
        base_url="https://openrouter.test/api/v1",
        api_key="sk-test",
        model="primary-model",
        fallback_model="fallback-model",
    )


@pytest.fixture
def analysis_cache():
    return AnalysisCache(TTLCache(size_limit=100))


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def make_service(analysis_cache, fake_llm):
    """Factory for an orchestration service wired to stubs."""
    def _make(**overrides):
        options = dict(
            cache=analysis_cache,
            broadcaster=ProgressBroadcaster(analysis_cache, queue_size=10),
            runner=BackgroundTaskRunner(),
            validator=AcceptAll(),
            extractor=StubExtractor(),
            documents=StubDocuments(),
            llm_factory=lambda provider_name, base_url: fake_llm,
            ai_timeout=1.0,
        )
        options.update(overrides)
        return AnalysisOrchestrationService(**options)
    return _make


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def preference_store(session_factory):
    return PreferenceStore(session_factory)


# =============================================================================
# Git
# =============================================================================

def git(repo, *args):
    return subprocess.run(
        ["git", "-c", "user.email=test@example.com", "-c", "user.name=Test", "-c", "commit.gpgsign=false", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )


@pytest.fixture
def git_repo(tmp_path):
    """A repository on branch main with one commit of src/app.py."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "main")
    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text("def add(a, b):\n    return a + b\n")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")
    return repo
