"""In-memory chat-session storage for the avatar relay.

The design is intentionally simple:
- a dict of session_id -> ChatSession is the only source of truth
- nothing is persisted; sessions live for the lifetime of the process
- every session has its own lock so that two requests touching the same
  session (e.g. a chat turn and a message append) are serialized

Callers always receive deep copies; mutating a returned session never
touches the store. Changes go through the field-level operations
(``add_message``, ``update_message``, ``attach_stream``, ``detach_stream``),
each applied under the session's lock.
"""

import logging
import threading
from typing import Dict, List, Optional

from exceptions.exceptions import NotFoundError, ValidationError
from ..models.session_models import (
    AvatarStreamInfo,
    ChatMessage,
    ChatSession,
    MessageStatus,
    utcnow,
)


logger = logging.getLogger(__name__)

MAX_USER_ID_LENGTH = 100


class ChatSessionStore:
    """Thread-safe in-memory chat-session store.

    Parameters
    ----------
    max_messages_per_session:
        Upper bound on the history kept per session. When an append goes
        past it, the oldest messages are dropped.
    """

    def __init__(self, max_messages_per_session: int = 100) -> None:
        self.max_messages_per_session = max_messages_per_session
        self._sessions: Dict[str, ChatSession] = {}
        self._session_locks: Dict[str, threading.Lock] = {}
        # Guards the two dicts above.
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lookup(self, session_id: str):
        with self._lock:
            return self._sessions.get(session_id), self._session_locks.get(session_id)

    @staticmethod
    def validate_user_id(user_id: Optional[str]) -> str:
        if user_id is None or not user_id.strip():
            raise ValidationError("UserId is required and cannot be empty")
        if len(user_id) > MAX_USER_ID_LENGTH:
            raise ValidationError(
                f"UserId cannot exceed {MAX_USER_ID_LENGTH} characters"
            )
        return user_id

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str) -> ChatSession:
        """Create a new, empty session for ``user_id`` and return it.

        Raises
        ------
        ValidationError
            If ``user_id`` is empty/blank or longer than 100 characters.
            Nothing is stored in that case.
        """
        self.validate_user_id(user_id)

        session = ChatSession(user_id=user_id)
        with self._lock:
            self._sessions[session.session_id] = session
            self._session_locks[session.session_id] = threading.Lock()

        logger.info("[SESSION] Created session %s for user %s", session.session_id, user_id)
        return session.model_copy(deep=True)

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Return a copy of the session, or None if it does not exist."""
        session, lock = self._lookup(session_id)
        if session is None:
            return None
        with lock:
            return session.model_copy(deep=True)

    def require_session(self, session_id: str) -> ChatSession:
        """Like ``get_session`` but raises ``NotFoundError`` when absent."""
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def get_user_sessions(self, user_id: str) -> List[ChatSession]:
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        sessions.sort(key=lambda s: s.created_at)
        return [s.model_copy(deep=True) for s in sessions]

    def user_exists(self, user_id: str) -> bool:
        """A user exists once they own at least one session."""
        with self._lock:
            return any(s.user_id == user_id for s in self._sessions.values())

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, session_id: str, message: ChatMessage) -> bool:
        """Append ``message`` to the session history.

        The message's ``session_id`` and ``timestamp`` are (re)assigned here;
        its ``id`` and ``status`` keep whatever the caller set (a fresh uuid
        and ``Pending`` by default).

        Returns False when the session does not exist.
        """
        session, lock = self._lookup(session_id)
        if session is None:
            logger.warning("[SESSION] Cannot add message: session %s not found", session_id)
            return False

        with lock:
            message.session_id = session_id
            message.timestamp = utcnow()
            if message.status is None:
                message.status = MessageStatus.PENDING
            session.messages.append(message.model_copy(deep=True))

            overflow = len(session.messages) - self.max_messages_per_session
            if overflow > 0:
                del session.messages[:overflow]
                logger.debug(
                    "[SESSION] Trimmed %d old message(s) from session %s", overflow, session_id
                )
            session.last_activity_at = message.timestamp

        logger.debug(
            "[SESSION] Added %s message %s to session %s",
            message.type.value, message.id, session_id,
        )
        return True

    def update_message(self, session_id: str, message: ChatMessage) -> bool:
        """Replace the stored message with the same id. False if not found."""
        session, lock = self._lookup(session_id)
        if session is None:
            return False

        with lock:
            for i, existing in enumerate(session.messages):
                if existing.id == message.id:
                    updated = message.model_copy(deep=True)
                    updated.session_id = session_id
                    session.messages[i] = updated
                    session.last_activity_at = utcnow()
                    return True
        return False

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def attach_stream(self, session_id: str, info: AvatarStreamInfo) -> bool:
        session, lock = self._lookup(session_id)
        if session is None:
            return False
        with lock:
            session.active_stream = info.model_copy()
            session.last_activity_at = utcnow()
        logger.info("[SESSION] Attached stream %s to session %s", info.stream_id, session_id)
        return True

    def detach_stream(self, session_id: str) -> bool:
        session, lock = self._lookup(session_id)
        if session is None:
            return False
        with lock:
            session.active_stream = None
            session.last_activity_at = utcnow()
        return True
