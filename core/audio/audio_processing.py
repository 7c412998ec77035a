"""
core.audio.audio_processing

Local handling of recorded audio before it is transcribed or handed to the
avatar vendor as an ``audio_url``:

- validate (non-empty, estimated duration under the configured maximum)
- "convert" to MP3 (pass-through for now; browsers already record a format
  the vendors accept)
- save under ``<storage_dir>/<session_id>/<timestamp>_<uuid>.mp3``
- resolve stored relative paths safely (no traversal outside storage_dir)
- delete files older than a given age
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from exceptions.exceptions import NotFoundError, ValidationError


logger = logging.getLogger(__name__)

# Rough duration estimate assumes a 128 kbps MP3.
_BYTES_PER_SECOND = 128 * 1024 // 8

_UNSAFE_SEGMENT_RE = re.compile(r"[^\w\-.]")


def _safe_segment(name: str) -> str:
    """Make ``name`` usable as a single path segment."""
    name = name.replace("\x00", "").replace("/", "_").replace("\\", "_")
    name = _UNSAFE_SEGMENT_RE.sub("_", name).strip("._")
    return name[:100] or "unnamed"


class AudioProcessingService:
    def __init__(self, storage_dir: Path, max_duration_seconds: int = 60) -> None:
        self.storage_dir = Path(storage_dir)
        self.max_duration_seconds = max_duration_seconds

    def convert_to_mp3(self, audio_data: bytes, original_format: str) -> bytes:
        logger.debug(
            "[AUDIO] Converting audio from %s to MP3, size: %d bytes",
            original_format, len(audio_data),
        )
        return audio_data

    def estimate_duration_seconds(self, audio_data: bytes) -> int:
        return len(audio_data) // _BYTES_PER_SECOND

    def validate_audio(self, audio_data: bytes, max_duration_seconds: int | None = None) -> None:
        """Raise ``ValidationError`` if the audio is empty or too long."""
        limit = max_duration_seconds or self.max_duration_seconds
        if not audio_data:
            raise ValidationError("Audio data is empty")

        estimated = self.estimate_duration_seconds(audio_data)
        if estimated > limit:
            raise ValidationError(
                f"Audio duration ({estimated}s) exceeds maximum ({limit}s)"
            )
        logger.debug("[AUDIO] Audio validation passed, estimated duration: %ds", estimated)

    def save_audio_file(self, audio_data: bytes, session_id: str) -> str:
        """Store the audio and return its path relative to ``storage_dir``.

        The relative path always uses forward slashes so it can be embedded
        in a URL.
        """
        session_dir = self.storage_dir / _safe_segment(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        file_name = f"{stamp}_{uuid4().hex}.mp3"
        path = session_dir / file_name
        path.write_bytes(audio_data)

        logger.info("[AUDIO] Saved audio file: %s (%d bytes)", path, len(audio_data))
        return f"{session_dir.name}/{file_name}"

    def get_full_path(self, relative_path: str) -> Path:
        """Resolve a stored relative path.

        Raises
        ------
        NotFoundError
            If the path escapes the storage directory or does not exist.
        """
        path = (self.storage_dir / relative_path).resolve()
        try:
            path.relative_to(self.storage_dir.resolve())
        except ValueError:
            raise NotFoundError(f"Audio file {relative_path} not found")
        if not path.is_file():
            raise NotFoundError(f"Audio file {relative_path} not found")
        return path

    def cleanup_old_files(self, older_than: timedelta) -> int:
        """Delete stored MP3s older than ``older_than``; prune empty dirs."""
        cutoff = time.time() - older_than.total_seconds()
        deleted = 0
        if not self.storage_dir.is_dir():
            return 0

        for directory in self.storage_dir.iterdir():
            if not directory.is_dir():
                continue
            for file in directory.glob("*.mp3"):
                if file.stat().st_mtime < cutoff:
                    file.unlink()
                    deleted += 1
                    logger.debug("[AUDIO] Deleted old audio file: %s", file)
            if not any(directory.iterdir()):
                directory.rmdir()
                logger.debug("[AUDIO] Deleted empty directory: %s", directory)

        logger.info("[AUDIO] Cleanup completed, deleted %d old audio file(s)", deleted)
        return deleted
