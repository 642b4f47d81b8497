"""
Stylist session API.

POST   /v1/sessions                    — Start a session
GET    /v1/sessions/{id}               — Snapshot (transcript, result, phase)
POST   /v1/sessions/{id}/item          — Upload the garment photo (multipart)
POST   /v1/sessions/{id}/item/base64   — Upload the garment photo (base64 / data URL)
POST   /v1/sessions/{id}/preferences   — Submit the questionnaire, starts the workflow
POST   /v1/sessions/{id}/reset         — Start over
GET    /v1/sessions/{id}/events        — Server-Sent Events stream of workflow events
DELETE /v1/sessions/{id}               — Drop the session
"""

import asyncio
import base64
import binascii
import json
import logging
import mimetypes
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..core.config import get_settings
from ..models import UserPreferences
from ..orchestrator.registry import SessionRegistry, get_session_registry
from ..orchestrator.state import WorkflowEvent
from ..orchestrator.workflow import WorkflowOrchestrator
from ..services.media import UploadedItem, split_data_url

logger = logging.getLogger(__name__)

sessions_router = APIRouter(tags=["sessions"])

ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".heic"}


# ── Request / response models ────────────────────────────────────────

class Base64UploadRequest(BaseModel):
    """Accept base64-encoded image data (from a browser file reader)."""
    data: str  # data:image/png;base64,... or raw base64
    filename: str = "upload.jpg"


class SubmissionResponse(BaseModel):
    accepted: bool
    session_id: str
    run_id: int


# ── Dependencies ─────────────────────────────────────────────────────

def get_orchestrator(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> WorkflowOrchestrator:
    orchestrator = registry.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return orchestrator


# ── Session lifecycle ────────────────────────────────────────────────

@sessions_router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(registry: SessionRegistry = Depends(get_session_registry)):
    orchestrator = await registry.create()
    return orchestrator.state.to_dict()


@sessions_router.get("/sessions/{session_id}")
async def get_session(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    return orchestrator.state.to_dict()


@sessions_router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    if not await registry.remove(session_id):
        raise HTTPException(status_code=404, detail="Session not found")


@sessions_router.post("/sessions/{session_id}/reset")
async def reset_session(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    await orchestrator.reset()
    return orchestrator.state.to_dict()


# ── Upload ───────────────────────────────────────────────────────────

@sessions_router.post("/sessions/{session_id}/item")
async def upload_item(
    file: UploadFile = File(..., description="Photo of the garment"),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Upload the garment photo via multipart form data. Resets the session downstream."""
    filename = file.filename or "upload.jpg"
    _validate_extension(filename)

    file_bytes = await file.read()
    _validate_size(file_bytes)

    content_type = file.content_type or mimetypes.guess_type(filename)[0]
    await orchestrator.select_item(
        UploadedItem(filename=filename, content_type=content_type, content=file_bytes)
    )
    logger.info("Uploaded (multipart): %s (%d bytes) → session %s",
                filename, len(file_bytes), orchestrator.session_id)
    return orchestrator.state.to_dict()


@sessions_router.post("/sessions/{session_id}/item/base64")
async def upload_item_base64(
    request: Base64UploadRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Upload the garment photo as base64 or a data URL."""
    _validate_extension(request.filename)

    header_mime, payload = split_data_url(request.data.encode("ascii", "ignore"))
    try:
        file_bytes = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 data")
    _validate_size(file_bytes)

    content_type = header_mime or mimetypes.guess_type(request.filename)[0]
    await orchestrator.select_item(
        UploadedItem(filename=request.filename, content_type=content_type, content=file_bytes)
    )
    logger.info("Uploaded (base64): %s (%d bytes) → session %s",
                request.filename, len(file_bytes), orchestrator.session_id)
    return orchestrator.state.to_dict()


# ── Questionnaire ────────────────────────────────────────────────────

@sessions_router.post(
    "/sessions/{session_id}/preferences",
    response_model=SubmissionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_preferences(
    preferences: UserPreferences,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Submit the questionnaire. The workflow runs in the background; follow it
    via GET /v1/sessions/{id} or the events stream.
    """
    if orchestrator.state.item is None:
        raise HTTPException(status_code=400, detail="Upload a garment photo first")
    if orchestrator.state.processing:
        raise HTTPException(status_code=409, detail="The stylists are already working on this session")

    if not orchestrator.launch(preferences):
        raise HTTPException(status_code=409, detail="Submission was not accepted")
    return SubmissionResponse(
        accepted=True, session_id=orchestrator.session_id, run_id=orchestrator.run_id,
    )


# ── Events (SSE) ─────────────────────────────────────────────────────

@sessions_router.get("/sessions/{session_id}/events")
async def stream_events(
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Stream workflow events via Server-Sent Events.

    The first event is a snapshot of the current state; after that:
      data: {"type": "transcript.updated", "data": {"message": {...}}, ...}
      data: {"type": "result.partial", "data": {"result": {...}}, ...}
      data: {"type": "result.complete", "data": {"result": {...}}, ...}
      data: {"type": "workflow.failed", "data": {"notice": "..."}, ...}
    """
    settings = get_settings()
    keepalive = settings.sse_keepalive_seconds
    # Bounded per connection; a stalled client loses the oldest events first
    queue: asyncio.Queue = asyncio.Queue(maxsize=settings.sse_buffer_size)

    async def enqueue(event: WorkflowEvent) -> None:
        if queue.full():
            dropped = queue.get_nowait()
            logger.warning(
                "SSE buffer full for session %s, dropped %s", orchestrator.session_id, dropped.type,
            )
        queue.put_nowait(event)

    unsubscribe = orchestrator.subscribe(enqueue)

    async def event_generator():
        try:
            yield f"data: {json.dumps({'type': 'snapshot', 'data': orchestrator.state.to_dict()})}\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), keepalive)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        except Exception as e:
            logger.error("SSE stream error: %s", e)
            yield f"data: {json.dumps({'type': 'error', 'content': str(e)})}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


# ── Helpers ──────────────────────────────────────────────────────────

def _validate_extension(filename: str) -> None:
    """Validate file extension against allowed image types."""
    ext = Path(filename).suffix.lower()
    if ext and ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"File type '{ext}' not allowed. "
                   f"Supported: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}",
        )


def _validate_size(file_bytes: bytes) -> None:
    if len(file_bytes) == 0:
        raise HTTPException(status_code=400, detail="Empty file")
    max_bytes = get_settings().max_upload_bytes
    if len(file_bytes) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large (max {max_bytes // (1024 * 1024)}MB).",
        )
