"""
Chat-session models for the avatar relay runtime.

These describe:
- ChatSession + ChatMessage (in-memory chat history)
- MessageType / MessageStatus enums
- AvatarStreamInfo + StreamStatus (coarse per-stream lifecycle)

Sessions are serialized to the browser with camelCase keys
(``sessionId``, ``lastActivityAt``, ...), which is what the web client reads.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    USER_TEXT = "UserText"
    USER_AUDIO = "UserAudio"
    ASSISTANT_TEXT = "AssistantText"
    ASSISTANT_AVATAR = "AssistantAvatar"
    SYSTEM = "System"

    @classmethod
    def parse(cls, value):
        """Accept either the name (``"UserText"``) or its ordinal (``0``)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise ValueError(f"Unknown message type ordinal: {value}")
        return cls(value)


class MessageStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class StreamStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SPEAKING = "speaking"
    ERROR = "error"
    CLOSED = "closed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str = ""
    type: MessageType = MessageType.USER_TEXT
    content: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.PENDING
    audio_url: Optional[str] = None
    error_message: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return MessageType.parse(value)


class AvatarStreamInfo(_CamelModel):
    stream_id: str
    session_id: str   # vendor session id, already cookie-normalized
    status: StreamStatus = StreamStatus.DISCONNECTED
    created_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)


class ChatSession(_CamelModel):
    session_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)
    messages: List[ChatMessage] = Field(default_factory=list)
    active_stream: Optional[AvatarStreamInfo] = None
