"""
core.avatar.did_protocol

Request/response shapes of the D-ID "clips streams" API, kept free of any
I/O so that they can be checked in isolation.

Endpoints (relative to the vendor base URL):

    POST   /clips/streams                 create a stream
    POST   /clips/streams/{id}/sdp        deliver the browser's SDP answer
    POST   /clips/streams/{id}/ice        deliver one ICE candidate
    POST   /clips/streams/{id}            send a script (text or audio)
    DELETE /clips/streams/{id}            close the stream
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from exceptions.exceptions import VendorError
from .models import IceServer, StreamHandle


logger = logging.getLogger(__name__)

STREAMS_PATH = "/clips/streams"

# Marker of the load-balancer cookie that the vendor sometimes hands out
# in place of a plain session token.
_COOKIE_MARKER = "AWSALB="

DEFAULT_VOICE_ID = "en-US-JennyNeural"


def stream_path(stream_id: str, suffix: str = "") -> str:
    path = f"{STREAMS_PATH}/{stream_id}"
    if suffix:
        path = f"{path}/{suffix}"
    return path


def normalize_session_id(session_id: str) -> str:
    """Strip the cookie wrapper from a vendor session id.

    ``"AWSALB=abc; AWSALBCORS=abc; Path=/"`` becomes ``"abc"``; a plain token
    is returned unchanged. Extraction is best-effort string parsing, not a
    guaranteed format.
    """
    if not session_id or _COOKIE_MARKER not in session_id:
        return session_id

    start = session_id.index(_COOKIE_MARKER) + len(_COOKIE_MARKER)
    end = session_id.find(";", start)
    if end == -1:
        end = len(session_id)
    value = session_id[start:end].strip()
    if not value:
        logger.warning("[AVATAR] Empty AWSALB value in session id, using it as-is")
        return session_id
    return value


# -------------------------------------------------------------------
# Request payloads
# -------------------------------------------------------------------


def build_create_payload(presenter_id: str, driver_id: str) -> Dict[str, Any]:
    return {"presenter_id": presenter_id, "driver_id": driver_id}


def build_sdp_payload(session_id: str, sdp_answer: Any) -> Dict[str, Any]:
    return {"answer": sdp_answer, "session_id": session_id}


def build_ice_payload(
    session_id: str,
    candidate: Any,
    mid: Optional[str] = None,
    line_index: Optional[int] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"candidate": candidate}
    if mid is not None:
        payload["sdpMid"] = mid
    if line_index is not None:
        payload["sdpMLineIndex"] = line_index
    payload["session_id"] = session_id
    return payload


def build_text_script_payload(
    session_id: str,
    text: str,
    emotion: Optional[str] = None,
    voice_id: str = DEFAULT_VOICE_ID,
) -> Dict[str, Any]:
    """Build the body that makes the avatar speak ``text``.

    The ``driver_expressions`` block is present only when ``emotion`` is set.
    """
    config: Dict[str, Any] = {
        "stitch": True,
        "driver": {
            "loop": False,
            "enable_audio_normalization": True,
            "motion_speed": 0.7,
            "silence_padding": 0.2,
        },
    }
    if emotion:
        config["driver_expressions"] = {"expression": emotion}

    return {
        "script": {
            "type": "text",
            "input": text,
            "provider": {
                "type": "microsoft",
                "voice_id": voice_id,
                "voice_config": {"rate": "+0%", "pitch": "+0%"},
            },
        },
        "config": config,
        "session_id": session_id,
    }


def build_audio_script_payload(session_id: str, audio_url: str) -> Dict[str, Any]:
    return {
        "script": {"type": "audio", "audio_url": audio_url},
        "config": {"stitch": True},
        "session_id": session_id,
    }


def build_close_payload(session_id: str) -> Dict[str, Any]:
    return {"session_id": session_id}


# -------------------------------------------------------------------
# Response parsing
# -------------------------------------------------------------------


def parse_stream_response(data: Dict[str, Any]) -> StreamHandle:
    """Turn the create-stream response into a ``StreamHandle``.

    Raises
    ------
    VendorError
        If ``id`` or ``session_id`` is missing, or an ICE server entry
        carries fields of the wrong type.
    """
    stream_id = data.get("id")
    session_id = data.get("session_id")
    if not stream_id:
        raise VendorError(STREAMS_PATH, reason="response is missing 'id'", body=str(data))
    if not session_id:
        raise VendorError(
            STREAMS_PATH, reason="response is missing 'session_id'", body=str(data)
        )

    raw_servers = data.get("ice_servers") or []
    if isinstance(raw_servers, (dict, str)):
        raw_servers = [raw_servers]

    ice_servers = []
    try:
        for raw in raw_servers:
            if isinstance(raw, dict):
                ice_servers.append(IceServer(**raw))
            elif isinstance(raw, str):
                ice_servers.append(IceServer(urls=raw))
    except PydanticValidationError as e:
        raise VendorError(
            STREAMS_PATH, reason=f"malformed ice_servers: {e}", body=str(data)
        ) from e

    offer = data.get("offer")
    return StreamHandle(
        id=str(stream_id),
        session_id=str(session_id),
        offer=offer if offer is not None else {},
        ice_servers=ice_servers,
    )
