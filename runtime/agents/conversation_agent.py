"""ConversationAgent implementation.

Responsible for one chat turn:
- record the user's message (text, or transcribed audio) in the session
- ask the language model for a reply, replaying recent history
- record the reply
- if the session has a live avatar stream, make the avatar speak it

Message statuses follow the turn: the user message is recorded as
Processing and ends Completed (or Failed with the error text), and the
assistant message is Completed, or Failed when the avatar refused the text.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from core.api.llm_client import LLMService
from exceptions.exceptions import NotFoundError, TransientNetworkError
from ..models.session_models import (
    ChatMessage,
    MessageStatus,
    MessageType,
    StreamStatus,
)
from ..store.session_store import ChatSessionStore
from .stream_orchestrator import AvatarStreamOrchestrator


logger = logging.getLogger(__name__)

_SPEAKABLE = (StreamStatus.CONNECTED, StreamStatus.SPEAKING)


class ChatTurnResult(BaseModel):
    user_message_id: str
    assistant_message_id: str
    text: str
    emotion: Optional[str] = None
    spoken: bool = False


class ConversationAgent:
    """Conversation logic on top of the session store, LLM and avatar.

    Parameters
    ----------
    session_store:
        Store used to load sessions and record messages.
    llm_service:
        Chat-completions client producing the assistant reply.
    orchestrator:
        Optional avatar orchestrator. Without it (or without an attached
        stream that the orchestrator still tracks as connected) replies are
        text-only.
    """

    def __init__(
        self,
        session_store: ChatSessionStore,
        llm_service: LLMService,
        orchestrator: Optional[AvatarStreamOrchestrator] = None,
    ) -> None:
        self.session_store = session_store
        self.llm_service = llm_service
        self.orchestrator = orchestrator

    def handle_user_message(
        self,
        session_id: str,
        content: str,
        message_type: MessageType = MessageType.USER_TEXT,
        audio_url: Optional[str] = None,
        speak: bool = True,
    ) -> ChatTurnResult:
        """Run one turn for ``content`` in ``session_id``.

        Raises
        ------
        NotFoundError
            If the session does not exist.
        OpenAIError
            If the model call fails (the user message is marked Failed first).
        """
        session = self.session_store.require_session(session_id)
        history = list(session.messages)

        # (1) Record the user's message.
        user_message = ChatMessage(
            type=message_type,
            content=content,
            audio_url=audio_url,
            status=MessageStatus.PROCESSING,
        )
        if not self.session_store.add_message(session_id, user_message):
            raise NotFoundError(f"Session {session_id} not found")

        # (2) Ask the model.
        try:
            reply = self.llm_service.get_response(content, history)
        except Exception as e:
            user_message.status = MessageStatus.FAILED
            user_message.error_message = str(e)
            self.session_store.update_message(session_id, user_message)
            logger.warning("[CHAT] LLM call failed for session %s: %s", session_id, e)
            raise

        user_message.status = MessageStatus.COMPLETED
        self.session_store.update_message(session_id, user_message)

        # (3) Speak it, if a live stream is attached.
        spoken = False
        speak_error: Optional[str] = None
        stream = session.active_stream
        if speak and stream is not None and self.orchestrator is not None:
            current = self.orchestrator.get_stream(stream.stream_id)
            if current is None:
                # Reaped or never tracked here; the session's snapshot is stale.
                logger.debug(
                    "[CHAT] Stream %s is no longer tracked, replying with text only",
                    stream.stream_id,
                )
                self.session_store.detach_stream(session_id)
            elif current.status in _SPEAKABLE:
                try:
                    spoken = self.orchestrator.send_text(
                        stream.stream_id, stream.session_id, reply.text, reply.emotion
                    )
                except TransientNetworkError as e:
                    speak_error = str(e)
                if not spoken and speak_error is None:
                    speak_error = "Avatar rejected the text"
            else:
                logger.debug(
                    "[CHAT] Stream %s is %s, replying with text only",
                    stream.stream_id, current.status.value,
                )

        # (4) Record the reply.
        assistant_message = ChatMessage(
            type=MessageType.ASSISTANT_AVATAR if spoken else MessageType.ASSISTANT_TEXT,
            content=reply.text,
            status=MessageStatus.FAILED if speak_error else MessageStatus.COMPLETED,
            error_message=speak_error,
        )
        self.session_store.add_message(session_id, assistant_message)

        logger.info(
            "[CHAT] Turn completed for session %s (spoken=%s)", session_id, spoken
        )
        return ChatTurnResult(
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            text=reply.text,
            emotion=reply.emotion,
            spoken=spoken,
        )
