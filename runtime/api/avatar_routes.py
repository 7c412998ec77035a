"""HTTP routes that relay avatar-stream signaling to the vendor.

Exposes (under /api/avatar):

- POST   /stream/create      -> {id, session_id, offer, ice_servers}
- POST   /stream/{id}/start  -> deliver the browser's SDP answer
- POST   /stream/{id}/ice    -> deliver one ICE candidate
- POST   /stream/{id}/text   -> make the avatar speak plain text
- POST   /stream/{id}/idle   -> browser reports "stream/done"
- POST   /stream/{id}        -> send a vendor-style script (text or audio)
- GET    /stream/{id}        -> tracked stream status
- DELETE /stream/{id}        -> close the stream
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter

from exceptions.exceptions import (
    NotFoundError,
    RejectedError,
    RelayError,
    ServiceError,
    ValidationError,
)
from ..agents.stream_orchestrator import AvatarStreamOrchestrator
from ..models.api_models import (
    CloseStreamRequest,
    CreateStreamRequest,
    IceCandidateRequest,
    SendScriptRequest,
    SendTextRequest,
    StartStreamRequest,
    SuccessResponse,
)
from ..models.session_models import AvatarStreamInfo


logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR = "Avatar service error"

# Module-level reference, to be initialized by the server.
_ORCHESTRATOR: Optional[AvatarStreamOrchestrator] = None


def init_routes(orchestrator: AvatarStreamOrchestrator) -> None:
    """Initialize the module-level reference used by the route handlers."""
    global _ORCHESTRATOR
    _ORCHESTRATOR = orchestrator


def _require_orchestrator() -> AvatarStreamOrchestrator:
    if _ORCHESTRATOR is None:
        raise ServiceError(
            "AvatarStreamOrchestrator is not configured on the server.", error=_ERROR
        )
    return _ORCHESTRATOR


def require_field(value: Any, name: str) -> Any:
    """Raise ``ValidationError`` naming ``name`` when ``value`` is missing."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {name}")
    return value


def _wrap_unexpected(e: Exception, what: str, stream_id: Optional[str] = None) -> ServiceError:
    logger.exception("[AVATAR] Unexpected error %s (stream_id=%s)", what, stream_id)
    return ServiceError(str(e), error=_ERROR)


# --------------------------------------------------------
# Create
# --------------------------------------------------------
@router.post("/stream/create")
def create_stream(request: Optional[CreateStreamRequest] = None):
    """Create a new vendor stream.

    Both ids are optional; the configured presenter/driver are used when
    omitted.
    """
    orchestrator = _require_orchestrator()
    try:
        handle = orchestrator.create_stream(
            request.presenter_id if request else None,
            request.driver_id if request else None,
        )
        return handle.to_client()
    except RelayError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "creating stream") from e


# --------------------------------------------------------
# Signaling
# --------------------------------------------------------
@router.post("/stream/{stream_id}/start", response_model=SuccessResponse)
def start_stream(stream_id: str, request: StartStreamRequest) -> SuccessResponse:
    """Start the stream with the browser's SDP answer."""
    session_id = require_field(request.session_id, "session_id")
    sdp_answer = require_field(request.sdp_answer, "sdp_answer")

    orchestrator = _require_orchestrator()
    logger.debug("[AVATAR] Starting stream %s", stream_id)
    try:
        success = orchestrator.start_stream(stream_id, session_id, sdp_answer)
    except RelayError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "starting stream", stream_id) from e

    if not success:
        raise RejectedError("Failed to start stream")
    return SuccessResponse(success=True)


@router.post("/stream/{stream_id}/ice", response_model=SuccessResponse)
def send_ice_candidate(stream_id: str, request: IceCandidateRequest) -> SuccessResponse:
    """Relay one ICE candidate gathered by the browser."""
    session_id = require_field(request.session_id, "session_id")
    candidate = require_field(request.candidate, "candidate")

    orchestrator = _require_orchestrator()
    try:
        success = orchestrator.send_ice_candidate(
            stream_id, session_id, candidate, request.mid, request.line_index
        )
    except RelayError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "sending ICE candidate", stream_id) from e

    if not success:
        raise RejectedError("Failed to send ICE candidate")
    return SuccessResponse(success=True)


# --------------------------------------------------------
# Speech
# --------------------------------------------------------
@router.post("/stream/{stream_id}/text", response_model=SuccessResponse)
def send_text(stream_id: str, request: SendTextRequest) -> SuccessResponse:
    session_id = require_field(request.session_id, "session_id")
    text = require_field(request.text, "text")

    orchestrator = _require_orchestrator()
    try:
        success = orchestrator.send_text(stream_id, session_id, text, request.emotion)
    except RelayError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "sending text", stream_id) from e

    if not success:
        raise RejectedError("Failed to send text to avatar")
    return SuccessResponse(success=True)


@router.post("/stream/{stream_id}/idle", response_model=SuccessResponse)
def mark_idle(stream_id: str) -> SuccessResponse:
    orchestrator = _require_orchestrator()
    return SuccessResponse(success=orchestrator.mark_idle(stream_id))


@router.post("/stream/{stream_id}", response_model=SuccessResponse)
def send_script(stream_id: str, request: SendScriptRequest) -> SuccessResponse:
    """Send a script to the avatar stream (makes the avatar speak).

    ``script.type == "audio"`` requires ``script.audio_url``; any other type
    is treated as text and requires ``script.input``.
    """
    logger.debug("[AVATAR] Received script request for stream %s", stream_id)
    session_id = require_field(request.session_id, "session_id")
    script = require_field(request.script, "script")

    orchestrator = _require_orchestrator()
    try:
        if script.type == "audio":
            audio_url = require_field(script.audio_url, "script.audio_url")
            success = orchestrator.send_audio(stream_id, session_id, audio_url)
            failure = "Failed to send audio to avatar"
        else:
            text = require_field(script.input, "script.input")
            success = orchestrator.send_text(
                stream_id, session_id, text, request.resolved_emotion()
            )
            failure = "Failed to send text to avatar"
    except RelayError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "sending script", stream_id) from e

    if not success:
        raise RejectedError(failure)
    return SuccessResponse(success=True)


# --------------------------------------------------------
# Status / close
# --------------------------------------------------------
@router.get("/stream/{stream_id}", response_model=AvatarStreamInfo)
def get_stream(stream_id: str) -> AvatarStreamInfo:
    info = _require_orchestrator().get_stream(stream_id)
    if info is None:
        raise NotFoundError(f"Stream {stream_id} not found")
    return info


@router.delete("/stream/{stream_id}", response_model=SuccessResponse)
def close_stream(stream_id: str, request: CloseStreamRequest) -> SuccessResponse:
    logger.debug("[AVATAR] Closing stream %s", stream_id)
    session_id = require_field(request.session_id, "session_id")

    orchestrator = _require_orchestrator()
    try:
        success = orchestrator.close_stream(stream_id, session_id)
    except RelayError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "closing stream", stream_id) from e

    if not success:
        raise RejectedError("Failed to close stream")
    return SuccessResponse(success=True)
