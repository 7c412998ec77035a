"""
core.api.speech_client

Speech-to-text over the ASR vendor's HTTP API:

    POST {ASR_BASE_URL}/api/speech-to-text   multipart field "audio"
    Authorization: Bearer <ASR_API_KEY>

The response is expected to carry ``text`` and ``confidence``; missing
fields default to an empty transcript with zero confidence.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from .http_client import VendorHttpClient


logger = logging.getLogger(__name__)

TRANSCRIBE_PATH = "/api/speech-to-text"


class AudioToTextResponse(BaseModel):
    text: str = ""
    confidence: float = 0.0


class AudioToTextService:
    def __init__(self, client: VendorHttpClient) -> None:
        self.client = client

    def convert_audio_to_text(
        self,
        audio_data: bytes,
        file_name: str,
        content_type: Optional[str] = None,
    ) -> AudioToTextResponse:
        logger.info("[ASR] Converting audio to text, file: %s (%d bytes)", file_name, len(audio_data))

        data = self.client.post_multipart(
            TRANSCRIBE_PATH,
            files={"audio": (file_name, audio_data, content_type or "audio/mpeg")},
        )

        text = data.get("text") or data.get("Text") or ""
        confidence = data.get("confidence") or data.get("Confidence") or 0.0
        result = AudioToTextResponse(text=str(text), confidence=float(confidence))

        logger.info("[ASR] Transcription completed, text length: %d", len(result.text))
        return result
