import json
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from codereview.exceptions import AnalysisValidationError
from codereview.schemas import StartAnalysisRequest
from codereview.services.orchestration import AnalysisOrchestrationService, get_orchestration_service
from codereview.services.preferences import DEFAULT_SESSION_KEY

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start")
async def start_analysis(
    request: StartAnalysisRequest,
    x_session_id: Optional[str] = Header(default=None),
    service: AnalysisOrchestrationService = Depends(get_orchestration_service)
):
    """Accept an analysis and run it in the background."""
    try:
        analysis_id = await service.start_analysis(request, session_key=x_session_id or DEFAULT_SESSION_KEY)
    except AnalysisValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {"analysis_id": analysis_id}


@router.get("/status")
async def get_status_without_id(
    service: AnalysisOrchestrationService = Depends(get_orchestration_service)
):
    return await service.get_status(None)


@router.get("/status/{analysis_id}")
async def get_status(
    analysis_id: str,
    service: AnalysisOrchestrationService = Depends(get_orchestration_service)
):
    """Poll the current status; unknown ids report NotFound."""
    return await service.get_status(analysis_id)


@router.get("/{analysis_id}/events")
async def stream_analysis(
    analysis_id: str,
    service: AnalysisOrchestrationService = Depends(get_orchestration_service)
):
    """SSE stream: current snapshot first, then live events until a terminal one."""
    async def event_generator() -> AsyncGenerator:
        async for event in service.broadcaster.stream(analysis_id):
            yield ServerSentEvent(event=event["event"], data=json.dumps(event["data"]))

    return EventSourceResponse(event_generator())


@router.get("/{analysis_id}/content")
async def get_content(
    analysis_id: str,
    service: AnalysisOrchestrationService = Depends(get_orchestration_service)
):
    """Extracted diff or file content of an analysis."""
    content = await service.get_content(analysis_id)
    if content is None:
        raise HTTPException(status_code=404, detail="Content not found or expired")
    return {"analysis_id": analysis_id, **content.to_dict()}
