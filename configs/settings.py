from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


def _resolve_secret(value: Optional[str]) -> Optional[str]:
    """Return the secret behind ``value``.

    A secret setting may either hold the secret itself or the *name* of
    another environment variable that holds it (e.g. ``DID_API_KEY=MY_DID_KEY``).
    The indirection wins when that variable exists and is non-empty.
    """
    if not value:
        return None
    indirect = os.getenv(value)
    if indirect:
        return indirect
    return value


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


class Settings:
    """
    Central configuration for the avatar relay.

    Values are loaded once from environment variables (with sensible defaults)
    and then exposed via typed properties.
    """

    def __init__(self) -> None:
        # Avatar vendor (D-ID clips streams)
        self._did_api_key = _resolve_secret(os.getenv("DID_API_KEY"))
        self._did_base_url = os.getenv("DID_BASE_URL", "https://api.d-id.com")
        self._did_presenter_id = os.getenv("DID_PRESENTER_ID", "")
        self._did_driver_id = os.getenv("DID_DRIVER_ID", "")
        self._did_voice_id = os.getenv("DID_VOICE_ID", "en-US-JennyNeural")
        self._did_timeout = _float_env("DID_TIMEOUT_SECONDS", 60.0)

        # Language model (chat-completions compatible endpoint)
        self._llm_api_key = _resolve_secret(os.getenv("LLM_API_KEY"))
        self._llm_base_url = os.getenv("LLM_BASE_URL") or None
        self._llm_model = os.getenv("LLM_MODEL", "gpt-4.1-mini")
        self._llm_timeout = _float_env("LLM_TIMEOUT_SECONDS", 60.0)
        self._llm_system_prompt = os.getenv(
            "LLM_SYSTEM_PROMPT",
            "You are a helpful AI assistant with a friendly personality.",
        )

        # Speech-to-text vendor
        self._asr_api_key = _resolve_secret(os.getenv("ASR_API_KEY"))
        self._asr_base_url = os.getenv("ASR_BASE_URL", "")
        self._asr_timeout = _float_env("ASR_TIMEOUT_SECONDS", 30.0)

        # Browser-side speech SDK credentials
        self._azure_speech_key = _resolve_secret(os.getenv("AZURE_SPEECH_KEY"))
        self._azure_speech_region = os.getenv("AZURE_SPEECH_REGION", "")

        # Chat behaviour
        self._session_timeout_minutes = _int_env("SESSION_TIMEOUT_MINUTES", 30)
        self._max_messages_per_session = _int_env("MAX_MESSAGES_PER_SESSION", 100)
        self._max_audio_duration_seconds = _int_env("MAX_AUDIO_DURATION_SECONDS", 60)
        self._audio_storage_dir = Path(
            os.getenv("AUDIO_STORAGE_DIR", "runtime/data/audio")
        )

        # Outbound HTTP
        self._http_retry_attempts = _int_env("HTTP_RETRY_ATTEMPTS", 3)
        self._http_retry_backoff = _float_env("HTTP_RETRY_BACKOFF_SECONDS", 0.5)

        # Background sweep of abandoned streams (0 disables it)
        self._stream_reaper_interval = _int_env("STREAM_REAPER_INTERVAL_SECONDS", 300)

        # Web surface
        self._cors_origins = os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://localhost:5173",
        )
        self._log_level = os.getenv("LOG_LEVEL", "INFO")

    # ------------------------------------------------------------------
    # Avatar vendor
    # ------------------------------------------------------------------

    @property
    def did_api_key(self) -> str:
        if not self._did_api_key:
            raise RuntimeError(
                "DID_API_KEY is not set. Please export it in your environment "
                "or define it in a .env file."
            )
        return self._did_api_key

    @property
    def did_configured(self) -> bool:
        return bool(self._did_api_key)

    @property
    def did_base_url(self) -> str:
        return self._did_base_url

    @property
    def did_presenter_id(self) -> str:
        return self._did_presenter_id

    @property
    def did_driver_id(self) -> str:
        return self._did_driver_id

    @property
    def did_voice_id(self) -> str:
        return self._did_voice_id

    @property
    def did_timeout(self) -> float:
        return self._did_timeout

    # ------------------------------------------------------------------
    # Language model
    # ------------------------------------------------------------------

    @property
    def llm_api_key(self) -> Optional[str]:
        return self._llm_api_key

    @property
    def llm_base_url(self) -> Optional[str]:
        return self._llm_base_url

    @property
    def llm_model(self) -> str:
        return self._llm_model

    @property
    def llm_timeout(self) -> float:
        return self._llm_timeout

    @property
    def llm_system_prompt(self) -> str:
        return self._llm_system_prompt

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    @property
    def asr_api_key(self) -> Optional[str]:
        return self._asr_api_key

    @property
    def asr_base_url(self) -> str:
        return self._asr_base_url

    @property
    def asr_timeout(self) -> float:
        return self._asr_timeout

    @property
    def azure_speech_key(self) -> Optional[str]:
        return self._azure_speech_key

    @property
    def azure_speech_region(self) -> str:
        return self._azure_speech_region

    # ------------------------------------------------------------------
    # Chat / storage
    # ------------------------------------------------------------------

    @property
    def session_timeout_minutes(self) -> int:
        return self._session_timeout_minutes

    @property
    def max_messages_per_session(self) -> int:
        return self._max_messages_per_session

    @property
    def max_audio_duration_seconds(self) -> int:
        return self._max_audio_duration_seconds

    @property
    def audio_storage_dir(self) -> Path:
        return self._audio_storage_dir

    # ------------------------------------------------------------------
    # HTTP / background work
    # ------------------------------------------------------------------

    @property
    def http_retry_attempts(self) -> int:
        return max(1, self._http_retry_attempts)

    @property
    def http_retry_backoff(self) -> float:
        return self._http_retry_backoff

    @property
    def stream_reaper_interval(self) -> int:
        return self._stream_reaper_interval

    # ------------------------------------------------------------------
    # Web surface
    # ------------------------------------------------------------------

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self._cors_origins.split(",") if o.strip()]

    @property
    def log_level(self) -> str:
        return self._log_level

    def describe(self) -> dict:
        """Return a printable view of the configuration with secrets masked."""
        def _mask(value: Optional[str]) -> str:
            return "<set>" if value else "<unset>"

        return {
            "did_api_key": _mask(self._did_api_key),
            "did_base_url": self._did_base_url,
            "did_presenter_id": self._did_presenter_id,
            "did_driver_id": self._did_driver_id,
            "did_voice_id": self._did_voice_id,
            "llm_api_key": _mask(self._llm_api_key),
            "llm_base_url": self._llm_base_url,
            "llm_model": self._llm_model,
            "asr_api_key": _mask(self._asr_api_key),
            "asr_base_url": self._asr_base_url,
            "azure_speech_key": _mask(self._azure_speech_key),
            "azure_speech_region": self._azure_speech_region,
            "session_timeout_minutes": self._session_timeout_minutes,
            "max_messages_per_session": self._max_messages_per_session,
            "max_audio_duration_seconds": self._max_audio_duration_seconds,
            "audio_storage_dir": str(self._audio_storage_dir),
            "http_retry_attempts": self.http_retry_attempts,
            "stream_reaper_interval": self._stream_reaper_interval,
            "cors_origins": self.cors_origins,
            "log_level": self._log_level,
        }


settings = Settings()
