"""Background sweep that closes abandoned avatar streams.

Every ``interval_seconds`` the reaper asks the orchestrator to close tracked
streams that saw no activity for ``max_idle_seconds``. It runs in a daemon
thread started and stopped by the FastAPI lifespan.
"""

import logging
import threading
from typing import Optional

from .stream_orchestrator import AvatarStreamOrchestrator


logger = logging.getLogger(__name__)


class StreamReaper:
    def __init__(
        self,
        orchestrator: AvatarStreamOrchestrator,
        interval_seconds: float,
        max_idle_seconds: float,
    ) -> None:
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.max_idle_seconds = max_idle_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep(self) -> int:
        """Run one pass; returns the number of streams closed."""
        try:
            closed = self.orchestrator.close_idle_streams(self.max_idle_seconds)
        except Exception:
            # A failed pass must not kill the thread; the next one retries.
            logger.exception("[REAPER] Sweep failed")
            return 0
        if closed:
            logger.info("[REAPER] Closed %d idle stream(s)", closed)
        return closed

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.sweep()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="stream-reaper", daemon=True)
        self._thread.start()
        logger.info(
            "[REAPER] Started (interval=%ss, max_idle=%ss)",
            self.interval_seconds, self.max_idle_seconds,
        )

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
