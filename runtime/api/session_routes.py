"""HTTP routes for chat sessions (under /api/session).

Exposes endpoints like:

- POST   /create                -> new session for {userId}
- GET    /{session_id}          -> the session (404 if unknown)
- POST   /{session_id}/messages -> append a message, returns {messageId}
- GET    /user/{user_id}        -> all sessions of a user
- POST   /{session_id}/stream   -> attach an avatar stream to the session
- DELETE /{session_id}/stream   -> detach it
"""

import logging
from typing import List, Optional

from fastapi import APIRouter

from core.avatar.did_protocol import normalize_session_id
from exceptions.exceptions import NotFoundError, ServiceError, ValidationError
from ..agents.stream_orchestrator import AvatarStreamOrchestrator
from ..models.api_models import (
    AddMessageRequest,
    AddMessageResponse,
    AttachStreamRequest,
    CreateSessionRequest,
    SuccessResponse,
)
from ..models.session_models import (
    AvatarStreamInfo,
    ChatMessage,
    ChatSession,
    StreamStatus,
)
from ..store.session_store import ChatSessionStore
from .avatar_routes import require_field


logger = logging.getLogger(__name__)

# Router for all session-related endpoints
router = APIRouter()


# Module-level references, to be initialized by the server.
_SESSION_STORE: Optional[ChatSessionStore] = None
_ORCHESTRATOR: Optional[AvatarStreamOrchestrator] = None


def init_routes(
    session_store: ChatSessionStore,
    orchestrator: Optional[AvatarStreamOrchestrator] = None,
) -> None:
    """Initialize module-level references used by the route handlers."""
    global _SESSION_STORE, _ORCHESTRATOR
    _SESSION_STORE = session_store
    _ORCHESTRATOR = orchestrator


def _require_session_store() -> ChatSessionStore:
    if _SESSION_STORE is None:
        raise ServiceError("ChatSessionStore is not configured on the server.")
    return _SESSION_STORE


@router.post("/create", response_model=ChatSession)
def create_session(request: CreateSessionRequest) -> ChatSession:
    """Create a new chat session.

    The store validates the user id (non-empty, at most 100 characters)
    before anything is stored.
    """
    return _require_session_store().create_session(request.user_id)


@router.get("/user/{user_id}", response_model=List[ChatSession])
def get_user_sessions(user_id: str) -> List[ChatSession]:
    store = _require_session_store()
    if not user_id.strip():
        raise ValidationError("UserId cannot be empty")
    if not store.user_exists(user_id):
        raise NotFoundError(f"User '{user_id}' does not exist")
    return store.get_user_sessions(user_id)


@router.get("/{session_id}", response_model=ChatSession)
def get_session(session_id: str) -> ChatSession:
    return _require_session_store().require_session(session_id)


@router.post("/{session_id}/messages", response_model=AddMessageResponse)
def add_message(session_id: str, request: AddMessageRequest) -> AddMessageResponse:
    content = request.content or ""
    if not content.strip() and not request.audio_url:
        raise ValidationError("Missing required field: content")

    message = ChatMessage(type=request.type, content=content, audio_url=request.audio_url)
    if not _require_session_store().add_message(session_id, message):
        raise NotFoundError(f"Session {session_id} not found")
    return AddMessageResponse(message_id=message.id)


@router.post("/{session_id}/stream", response_model=ChatSession)
def attach_stream(session_id: str, request: AttachStreamRequest) -> ChatSession:
    """Associate an avatar stream with the session.

    Streams opened through this relay are looked up in the registry; a
    stream it does not track can still be attached when its vendor session
    id is supplied, and is registered as connected from then on.
    """
    store = _require_session_store()
    stream_id = require_field(request.stream_id, "stream_id")

    info = _ORCHESTRATOR.get_stream(stream_id) if _ORCHESTRATOR is not None else None
    if info is None:
        vendor_session_id = require_field(request.session_id, "session_id")
        info = AvatarStreamInfo(
            stream_id=stream_id,
            session_id=normalize_session_id(vendor_session_id),
            status=StreamStatus.CONNECTED,
        )
        if store.get_session(session_id) is None:
            raise NotFoundError(f"Session {session_id} not found")
        if _ORCHESTRATOR is not None:
            _ORCHESTRATOR.registry.register(info)

    if not store.attach_stream(session_id, info):
        raise NotFoundError(f"Session {session_id} not found")
    return store.require_session(session_id)


@router.delete("/{session_id}/stream", response_model=SuccessResponse)
def detach_stream(session_id: str) -> SuccessResponse:
    if not _require_session_store().detach_stream(session_id):
        raise NotFoundError(f"Session {session_id} not found")
    return SuccessResponse(success=True)
