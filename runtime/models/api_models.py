"""
HTTP request/response models for the avatar relay API.

Required fields are declared Optional on purpose: the route handlers check
them and answer 400 with a message naming the missing field.

The browser client is not consistent about key spelling (``session_id`` on
script/close calls, ``sessionId`` on start/ICE calls), so both are accepted.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .session_models import MessageType


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Avatar streams
# ---------------------------------------------------------------------------


class CreateStreamRequest(_Request):
    presenter_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("presenterId", "presenter_id")
    )
    driver_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("driverId", "driver_id")
    )


class StartStreamRequest(_Request):
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("session_id", "sessionId")
    )
    sdp_answer: Optional[Any] = Field(
        default=None, validation_alias=_aliases("sdp_answer", "sdpAnswer", "answer")
    )


class IceCandidateRequest(_Request):
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("session_id", "sessionId")
    )
    candidate: Optional[Any] = None
    mid: Optional[str] = Field(default=None, validation_alias=_aliases("mid", "sdpMid"))
    line_index: Optional[int] = Field(
        default=None,
        validation_alias=_aliases("lineIndex", "line_index", "sdpMLineIndex"),
    )


class ScriptData(_Request):
    type: str = "text"
    input: Optional[str] = None
    audio_url: Optional[str] = Field(
        default=None, validation_alias=_aliases("audio_url", "audioUrl")
    )
    provider: Optional[Dict[str, Any]] = None
    ssml: bool = False


class SendScriptRequest(_Request):
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("session_id", "sessionId")
    )
    script: Optional[ScriptData] = None
    config: Optional[Dict[str, Any]] = None
    emotion: Optional[str] = None

    def resolved_emotion(self) -> Optional[str]:
        """Explicit ``emotion`` wins; otherwise ``config.driver_expressions``."""
        if self.emotion:
            return self.emotion
        expressions = (self.config or {}).get("driver_expressions")
        if isinstance(expressions, dict):
            expression = expressions.get("expression")
            if isinstance(expression, str) and expression:
                return expression
        return None


class SendTextRequest(_Request):
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("session_id", "sessionId")
    )
    text: Optional[str] = None
    emotion: Optional[str] = None


class CloseStreamRequest(_Request):
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("session_id", "sessionId")
    )


class SuccessResponse(BaseModel):
    success: bool


# ---------------------------------------------------------------------------
# Avatar test harness
# ---------------------------------------------------------------------------


class AvatarTestResponse(BaseModel):
    stream_id: str
    session_id: str
    test_session_id: str
    message: str
    offer: Any = None
    ice_servers: List[Any] = Field(default_factory=list)


class SpeakRequest(SendTextRequest):
    pass


# ---------------------------------------------------------------------------
# Sessions / chat
# ---------------------------------------------------------------------------


class CreateSessionRequest(_Request):
    user_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("userId", "user_id")
    )


class AddMessageRequest(_Request):
    type: MessageType = MessageType.USER_TEXT
    content: Optional[str] = None
    audio_url: Optional[str] = Field(
        default=None, validation_alias=_aliases("audioUrl", "audio_url")
    )

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return MessageType.parse(value)


class AddMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(serialization_alias="messageId")


class AttachStreamRequest(_Request):
    stream_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("streamId", "stream_id")
    )
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("session_id", "sessionId")
    )


class ChatRequest(_Request):
    content: Optional[str] = Field(
        default=None, validation_alias=_aliases("content", "message", "text")
    )
    type: MessageType = MessageType.USER_TEXT
    audio_url: Optional[str] = Field(
        default=None, validation_alias=_aliases("audioUrl", "audio_url")
    )
    speak: bool = True

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return MessageType.parse(value)


# ---------------------------------------------------------------------------
# LLM / audio
# ---------------------------------------------------------------------------


class LLMTestRequest(_Request):
    message: Optional[str] = None


class LLMTestWithSessionRequest(LLMTestRequest):
    user_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("userId", "user_id")
    )
    session_id: Optional[str] = Field(
        default=None, validation_alias=_aliases("sessionId", "session_id")
    )


class CleanupRequest(_Request):
    max_age_hours: float = Field(
        default=24.0, validation_alias=_aliases("maxAgeHours", "max_age_hours")
    )
