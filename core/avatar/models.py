from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class IceServer(BaseModel):
    """One STUN/TURN server offered by the vendor.

    The vendor sends ``urls`` either as a bare string or as a list; it is
    always exposed as a list.
    """
    urls: List[str] = Field(default_factory=list)
    username: Optional[str] = None
    credential: Optional[str] = None

    @field_validator("urls", mode="before")
    @classmethod
    def _coerce_urls(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value if v is not None]
        return []


class StreamHandle(BaseModel):
    """Normalized result of creating a vendor stream."""
    id: str
    session_id: str
    offer: Any = Field(default_factory=dict)   # SDP offer, relayed opaquely
    ice_servers: List[IceServer] = Field(default_factory=list)

    def to_client(self) -> Dict[str, Any]:
        return self.model_dump()
