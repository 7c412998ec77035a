"""Manual test harness for avatar streams (under /api/avatartest).

Each created stream gets an opaque *test session id* (a registry handle);
the remaining calls address the stream through that handle only:

- POST   /create-stream
- POST   /start-stream/{test_session_id}
- POST   /ice-candidate/{test_session_id}
- POST   /speak/{test_session_id}
- DELETE /close-stream/{test_session_id}
- GET    /active-streams
"""

import logging
from typing import Optional

from fastapi import APIRouter

from exceptions.exceptions import RejectedError, RelayError, ServiceError
from ..agents.stream_orchestrator import AvatarStreamOrchestrator
from ..models.api_models import (
    AvatarTestResponse,
    CloseStreamRequest,
    CreateStreamRequest,
    IceCandidateRequest,
    SpeakRequest,
    StartStreamRequest,
)
from .avatar_routes import require_field


logger = logging.getLogger(__name__)

router = APIRouter()

_ORCHESTRATOR: Optional[AvatarStreamOrchestrator] = None


def init_routes(orchestrator: AvatarStreamOrchestrator) -> None:
    global _ORCHESTRATOR
    _ORCHESTRATOR = orchestrator


def _require_orchestrator() -> AvatarStreamOrchestrator:
    if _ORCHESTRATOR is None:
        raise ServiceError("AvatarStreamOrchestrator is not configured on the server.")
    return _ORCHESTRATOR


@router.post("/create-stream", response_model=AvatarTestResponse)
def create_test_stream(request: Optional[CreateStreamRequest] = None) -> AvatarTestResponse:
    orchestrator = _require_orchestrator()
    logger.info("[AVATAR-TEST] Creating test avatar stream")
    try:
        handle = orchestrator.create_stream(
            request.presenter_id if request else None,
            request.driver_id if request else None,
        )
    except RelayError:
        raise
    except Exception as e:
        logger.exception("[AVATAR-TEST] Error creating test avatar stream")
        raise ServiceError(str(e), error="Failed to create avatar stream") from e

    test_session_id = orchestrator.registry.open_handle(handle.id)
    logger.info("[AVATAR-TEST] Test avatar stream created: %s", handle.id)
    return AvatarTestResponse(
        stream_id=handle.id,
        session_id=handle.session_id,
        test_session_id=test_session_id,
        message="Stream created successfully. Use the test_session_id for further operations.",
        offer=handle.offer,
        ice_servers=[s.model_dump() for s in handle.ice_servers],
    )


@router.post("/start-stream/{test_session_id}")
def start_test_stream(test_session_id: str, request: StartStreamRequest):
    orchestrator = _require_orchestrator()
    stream_id = orchestrator.registry.resolve_handle(test_session_id)
    session_id = require_field(request.session_id, "session_id")
    sdp_answer = require_field(request.sdp_answer, "sdp_answer")

    if not orchestrator.start_stream(stream_id, session_id, sdp_answer):
        raise RejectedError("Failed to start stream")
    return {"message": "Stream started successfully", "stream_id": stream_id}


@router.post("/ice-candidate/{test_session_id}")
def send_test_ice_candidate(test_session_id: str, request: IceCandidateRequest):
    orchestrator = _require_orchestrator()
    stream_id = orchestrator.registry.resolve_handle(test_session_id)
    session_id = require_field(request.session_id, "session_id")
    candidate = require_field(request.candidate, "candidate")

    if not orchestrator.send_ice_candidate(
        stream_id, session_id, candidate, request.mid, request.line_index
    ):
        raise RejectedError("Failed to send ICE candidate")
    return {"message": "ICE candidate sent successfully"}


@router.post("/speak/{test_session_id}")
def speak(test_session_id: str, request: SpeakRequest):
    """Make the avatar speak text (the main manual check)."""
    orchestrator = _require_orchestrator()
    stream_id = orchestrator.registry.resolve_handle(test_session_id)
    session_id = require_field(request.session_id, "session_id")
    text = require_field(request.text, "text")

    logger.info("[AVATAR-TEST] Making avatar speak on stream %s", stream_id)
    if not orchestrator.send_text(stream_id, session_id, text, request.emotion):
        raise RejectedError("Failed to send text to avatar")
    return {
        "message": "Avatar speech request sent successfully",
        "text": text,
        "emotion": request.emotion,
    }


@router.delete("/close-stream/{test_session_id}")
def close_test_stream(test_session_id: str, request: CloseStreamRequest):
    orchestrator = _require_orchestrator()
    stream_id = orchestrator.registry.resolve_handle(test_session_id)
    session_id = require_field(request.session_id, "session_id")

    success = orchestrator.close_stream(stream_id, session_id)
    if success:
        orchestrator.registry.release_handle(test_session_id)
    return {"message": "Stream closed" if success else "Stream close failed", "success": success}


@router.get("/active-streams")
def active_streams():
    registry = _require_orchestrator().registry
    streams = []
    for handle, stream_id in registry.list_handles():
        info = registry.get(stream_id)
        streams.append(
            {
                "test_session_id": handle,
                "stream_id": stream_id,
                "status": info.status.value if info else None,
            }
        )
    return {"active_streams": streams, "count": len(streams)}
