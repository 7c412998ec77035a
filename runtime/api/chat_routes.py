"""HTTP routes for talking to the language model.

- POST /api/chat/{session_id}/message -> one conversation turn (history is
                                         recorded, avatar speaks if attached)
- POST /api/llm/test                  -> one-off prompt, no history
- POST /api/llm/test-with-session     -> prompt with a stored session's history
"""

import logging
from typing import Optional

from fastapi import APIRouter
from openai import OpenAIError

from core.api.llm_client import LLMResponse, LLMService
from exceptions.exceptions import RelayError, ServiceError
from ..agents.conversation_agent import ChatTurnResult, ConversationAgent
from ..models.api_models import ChatRequest, LLMTestRequest, LLMTestWithSessionRequest
from ..models.session_models import MessageType
from ..store.session_store import ChatSessionStore
from .avatar_routes import require_field


logger = logging.getLogger(__name__)

router = APIRouter()
llm_router = APIRouter()

_ERROR = "LLM service error"

_CONVERSATION_AGENT: Optional[ConversationAgent] = None
_LLM_SERVICE: Optional[LLMService] = None
_SESSION_STORE: Optional[ChatSessionStore] = None


def init_routes(
    conversation_agent: ConversationAgent,
    llm_service: LLMService,
    session_store: ChatSessionStore,
) -> None:
    global _CONVERSATION_AGENT, _LLM_SERVICE, _SESSION_STORE
    _CONVERSATION_AGENT = conversation_agent
    _LLM_SERVICE = llm_service
    _SESSION_STORE = session_store


def _require_conversation_agent() -> ConversationAgent:
    if _CONVERSATION_AGENT is None:
        raise ServiceError("ConversationAgent is not configured on the server.")
    return _CONVERSATION_AGENT


def _require_llm_service() -> LLMService:
    if _LLM_SERVICE is None:
        raise ServiceError("LLMService is not configured on the server.", error=_ERROR)
    return _LLM_SERVICE


@router.post("/{session_id}/message", response_model=ChatTurnResult)
def chat(session_id: str, request: ChatRequest) -> ChatTurnResult:
    """Handle a single user message within a session."""
    content = require_field(request.content, "content")
    agent = _require_conversation_agent()
    try:
        return agent.handle_user_message(
            session_id,
            content,
            message_type=request.type
            if request.type in (MessageType.USER_TEXT, MessageType.USER_AUDIO)
            else MessageType.USER_TEXT,
            audio_url=request.audio_url,
            speak=request.speak,
        )
    except RelayError as e:
        logger.warning(
            "[CHAT] HTTP %s for session_id=%s reason=%r", e.status_code, session_id, e.details
        )
        raise
    except (OpenAIError, RuntimeError) as e:
        logger.exception("[CHAT] LLM failure for session_id=%s", session_id)
        raise ServiceError(str(e), error=_ERROR) from e
    except Exception as e:
        logger.exception("[CHAT] Unexpected error for session_id=%s", session_id)
        raise ServiceError(str(e)) from e


@llm_router.post("/test", response_model=LLMResponse)
def test_llm(request: LLMTestRequest) -> LLMResponse:
    message = require_field(request.message, "message")
    try:
        return _require_llm_service().get_response(message)
    except RelayError:
        raise
    except Exception as e:
        logger.exception("[LLM] Error testing LLM service")
        raise ServiceError(str(e), error=_ERROR) from e


@llm_router.post("/test-with-session", response_model=LLMResponse)
def test_llm_with_session(request: LLMTestWithSessionRequest) -> LLMResponse:
    message = require_field(request.message, "message")

    history = None
    if request.session_id and _SESSION_STORE is not None:
        history = _SESSION_STORE.require_session(request.session_id).messages
    try:
        return _require_llm_service().get_response(message, history)
    except RelayError:
        raise
    except Exception as e:
        logger.exception("[LLM] Error testing LLM service with session %s", request.session_id)
        raise ServiceError(str(e), error=_ERROR) from e
