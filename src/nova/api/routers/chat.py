from __future__ import annotations

import logging
from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from ...domain.build_models import BuildStatus, CancelResponse, ChatRequest
from ...domain.errors import ProjectNotFound, TurnInProgress
from ...infrastructure.repository import get_repo
from ...security.rate_limit import RateLimitExceeded, rate_limit_chat_turn
from ...services.build_turn import BuildTurn, cancel_turn, get_coordinator, start_turn
from ...services.streaming import ndjson_lines, text_stream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["chat"])

_STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "X-Content-Type-Options": "nosniff",
    "X-Accel-Buffering": "no",
}


def _open_turn(project_id: str, req: ChatRequest) -> BuildTurn:
    try:
        rate_limit_chat_turn(project_id)
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=429,
            detail="Too many build requests",
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )
    try:
        return start_turn(project_id, req.message, model=req.model, attachments=req.attachments)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except TurnInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post("/{project_id}/chat")
def chat(project_id: str, req: ChatRequest) -> StreamingResponse:
    """Stream the raw model text; ends with ``[NOVA_READY]`` once files and messages are saved."""
    turn = _open_turn(project_id, req)
    return StreamingResponse(
        text_stream(turn.events()),
        media_type="text/plain; charset=utf-8",
        headers=_STREAM_HEADERS,
    )


@router.post("/{project_id}/build")
def build(project_id: str, req: ChatRequest) -> StreamingResponse:
    """Stream parsed build events as NDJSON (start, chunk, file, progress, then done|cancelled|error)."""
    turn = _open_turn(project_id, req)
    return StreamingResponse(
        ndjson_lines(turn.events()),
        media_type="application/x-ndjson",
        headers=_STREAM_HEADERS,
    )


@router.post("/{project_id}/chat/cancel", response_model=CancelResponse)
def cancel(project_id: str) -> CancelResponse:
    if get_repo().get(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return CancelResponse(project_id=project_id, cancelled=cancel_turn(project_id))


@router.get("/{project_id}/build", response_model=BuildStatus)
def build_status(project_id: str) -> BuildStatus:
    if get_repo().get(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return get_coordinator().status(project_id)
