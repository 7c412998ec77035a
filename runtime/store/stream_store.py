"""Registry of avatar streams opened through this relay.

Holds, per vendor stream id:
- the ``AvatarStreamInfo`` (status, vendor session id, timestamps)
- a monotonic last-activity stamp used by the idle-stream reaper
- a lock that serializes operations on that one stream

It also issues opaque *test handles* for the avatar test harness. A handle
maps to a stream id so the harness can drive a stream without knowing it.

Everything lives in process memory; nothing survives a restart.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from exceptions.exceptions import NotFoundError
from ..models.session_models import AvatarStreamInfo, StreamStatus, utcnow


@dataclass
class _StreamRecord:
    info: AvatarStreamInfo
    last_activity: float = field(default_factory=time.monotonic)
    lock: threading.RLock = field(default_factory=threading.RLock)


class StreamRegistry:
    """Thread-safe in-memory store of tracked streams."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._records: Dict[str, _StreamRecord] = {}
        self._handles: Dict[str, str] = {}
        # Guards the two maps; per-stream work uses the record's own lock.
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def register(self, info: AvatarStreamInfo) -> AvatarStreamInfo:
        record = _StreamRecord(info=info.model_copy(), last_activity=self._clock())
        with self._lock:
            self._records[info.stream_id] = record
        return info

    def get(self, stream_id: str) -> Optional[AvatarStreamInfo]:
        with self._lock:
            record = self._records.get(stream_id)
        if record is None:
            return None
        with record.lock:
            return record.info.model_copy()

    @contextmanager
    def locked(self, stream_id: str) -> Iterator[Optional[AvatarStreamInfo]]:
        """Hold the per-stream lock; yields a copy of the info (or None)."""
        with self._lock:
            record = self._records.get(stream_id)
        if record is None:
            yield None
            return
        with record.lock:
            yield record.info.model_copy()

    def set_status(self, stream_id: str, status: StreamStatus) -> Optional[AvatarStreamInfo]:
        with self._lock:
            record = self._records.get(stream_id)
        if record is None:
            return None
        with record.lock:
            record.info.status = status
            record.info.last_activity_at = utcnow()
            record.last_activity = self._clock()
            return record.info.model_copy()

    def touch(self, stream_id: str) -> None:
        with self._lock:
            record = self._records.get(stream_id)
        if record is None:
            return
        with record.lock:
            record.info.last_activity_at = utcnow()
            record.last_activity = self._clock()

    def remove(self, stream_id: str) -> Optional[AvatarStreamInfo]:
        with self._lock:
            record = self._records.pop(stream_id, None)
            for handle in [h for h, s in self._handles.items() if s == stream_id]:
                del self._handles[handle]
        return record.info if record else None

    def list_streams(self) -> List[AvatarStreamInfo]:
        with self._lock:
            records = list(self._records.values())
        return [r.info.model_copy() for r in records]

    def idle_streams(self, max_idle_seconds: float) -> List[AvatarStreamInfo]:
        """Return open streams with no activity for ``max_idle_seconds``."""
        now = self._clock()
        with self._lock:
            records = list(self._records.values())
        idle = []
        for record in records:
            if record.info.status == StreamStatus.CLOSED:
                continue
            if now - record.last_activity >= max_idle_seconds:
                idle.append(record.info.model_copy())
        return idle

    def prune_closed(self, max_age_seconds: float) -> int:
        """Forget closed streams that have been closed for ``max_age_seconds``."""
        now = self._clock()
        with self._lock:
            stale = [
                stream_id
                for stream_id, record in self._records.items()
                if record.info.status == StreamStatus.CLOSED
                and now - record.last_activity >= max_age_seconds
            ]
        for stream_id in stale:
            self.remove(stream_id)
        return len(stale)

    # ------------------------------------------------------------------
    # Test handles
    # ------------------------------------------------------------------

    def open_handle(self, stream_id: str) -> str:
        handle = str(uuid4())
        with self._lock:
            self._handles[handle] = stream_id
        return handle

    def resolve_handle(self, handle: str) -> str:
        """Return the stream id behind ``handle``.

        Raises
        ------
        NotFoundError
            If the handle is unknown (never issued, or already released).
        """
        with self._lock:
            stream_id = self._handles.get(handle)
        if stream_id is None:
            raise NotFoundError(f"Test session {handle} not found")
        return stream_id

    def release_handle(self, handle: str) -> None:
        with self._lock:
            self._handles.pop(handle, None)

    def list_handles(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._handles.items())
