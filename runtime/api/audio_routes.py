"""HTTP routes for recorded audio and speech configuration.

- POST /api/audio/upload                         multipart {audio, sessionId} -> {audioUrl}
- GET  /api/audio/files/{session_id}/{file_name} stored file (for vendor audio scripts)
- POST /api/audio/transcribe                     multipart {audio} -> {text, confidence}
- POST /api/audio/cleanup                        {maxAgeHours?} -> {deleted}
- GET  /api/speech/config                        browser speech SDK key/region
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import FileResponse

from configs.settings import Settings
from core.api.speech_client import AudioToTextResponse, AudioToTextService
from core.audio.audio_processing import AudioProcessingService
from exceptions.exceptions import RelayError, ServiceError, ValidationError
from ..models.api_models import CleanupRequest


logger = logging.getLogger(__name__)

router = APIRouter()
speech_router = APIRouter()

_AUDIO_SERVICE: Optional[AudioProcessingService] = None
_SPEECH_SERVICE: Optional[AudioToTextService] = None
_SETTINGS: Optional[Settings] = None


def init_routes(
    audio_service: AudioProcessingService,
    speech_service: Optional[AudioToTextService],
    settings: Settings,
) -> None:
    global _AUDIO_SERVICE, _SPEECH_SERVICE, _SETTINGS
    _AUDIO_SERVICE = audio_service
    _SPEECH_SERVICE = speech_service
    _SETTINGS = settings


def _require_audio_service() -> AudioProcessingService:
    if _AUDIO_SERVICE is None:
        raise ServiceError("AudioProcessingService is not configured on the server.")
    return _AUDIO_SERVICE


def _read_upload(audio: Optional[UploadFile]) -> bytes:
    if audio is None:
        raise ValidationError("Missing required field: audio")
    data = audio.file.read()
    _require_audio_service().validate_audio(data)
    return data


@router.post("/upload")
def upload_audio(
    request: Request,
    audio: Optional[UploadFile] = File(None),
    sessionId: Optional[str] = Form(None),
):
    """Store a recording and return a URL the avatar vendor can fetch."""
    if not sessionId or not sessionId.strip():
        raise ValidationError("Missing required field: sessionId")
    data = _read_upload(audio)

    service = _require_audio_service()
    try:
        mp3 = service.convert_to_mp3(data, audio.content_type or audio.filename or "")
        relative_path = service.save_audio_file(mp3, sessionId)
    except RelayError:
        raise
    except Exception as e:
        logger.exception("[AUDIO] Error saving upload for session %s", sessionId)
        raise ServiceError(str(e), error="Audio upload failed") from e

    session_dir, file_name = relative_path.split("/", 1)
    audio_url = request.url_for(
        "get_audio_file", session_id=session_dir, file_name=file_name
    )
    return {"audioUrl": str(audio_url)}


@router.get("/files/{session_id}/{file_name}", name="get_audio_file")
def get_audio_file(session_id: str, file_name: str):
    path = _require_audio_service().get_full_path(f"{session_id}/{file_name}")
    return FileResponse(path, media_type="audio/mpeg")


@router.post("/transcribe", response_model=AudioToTextResponse)
def transcribe_audio(audio: Optional[UploadFile] = File(None)) -> AudioToTextResponse:
    if _SPEECH_SERVICE is None:
        raise ServiceError("Speech-to-text service is not configured", error="Speech service error")
    data = _read_upload(audio)
    try:
        return _SPEECH_SERVICE.convert_audio_to_text(
            data, audio.filename or "audio.mp3", audio.content_type
        )
    except RelayError:
        raise
    except Exception as e:
        logger.exception("[ASR] Error converting audio to text")
        raise ServiceError(str(e), error="Speech service error") from e


@router.post("/cleanup")
def cleanup_audio(request: Optional[CleanupRequest] = None):
    max_age_hours = request.max_age_hours if request else 24.0
    if max_age_hours < 0:
        raise ValidationError("maxAgeHours cannot be negative")
    deleted = _require_audio_service().cleanup_old_files(timedelta(hours=max_age_hours))
    return {"deleted": deleted}


@speech_router.get("/config")
def get_speech_config():
    """Credentials for the browser-side speech SDK."""
    key = _SETTINGS.azure_speech_key if _SETTINGS else None
    region = _SETTINGS.azure_speech_region if _SETTINGS else None
    if not key or not region:
        logger.error("[SPEECH] Speech service credentials not configured")
        raise ServiceError("Speech services not configured", error="Speech service error")
    return {"key": key, "region": region}
