"""AvatarStreamOrchestrator implementation.

Responsible for:
- translating relay operations (create/start/ICE/speak/close) into calls
  against the avatar vendor's clips-streams API
- normalizing vendor responses into a ``StreamHandle``
- tracking the coarse lifecycle of every stream it opened

Lifecycle per stream::

    connecting --start ok--> connected --send ok--> speaking
    speaking --mark_idle--> connected
    any --close ok--> closed
    any --vendor rejection / network fault--> error

``error`` and ``closed`` are terminal: start, ICE and send calls on such a
stream are refused locally. Closing an errored stream is still allowed so
that the vendor side can be freed.

Every vendor session id goes through ``normalize_session_id`` before use,
on all paths.
"""

import logging
from typing import Any, Optional

from core.api.http_client import VendorHttpClient
from core.avatar import did_protocol
from core.avatar.did_protocol import normalize_session_id
from core.avatar.models import StreamHandle
from exceptions.exceptions import TransientNetworkError
from ..models.session_models import AvatarStreamInfo, StreamStatus
from ..store.stream_store import StreamRegistry


logger = logging.getLogger(__name__)

_TERMINAL = (StreamStatus.CLOSED, StreamStatus.ERROR)


class AvatarStreamOrchestrator:
    """Drives vendor avatar streams on behalf of the browser.

    Parameters
    ----------
    client:
        ``VendorHttpClient`` bound to the vendor base URL and Basic auth.
    registry:
        ``StreamRegistry`` holding per-stream state.
    presenter_id, driver_id:
        Defaults used when ``create_stream`` is called without ids.
    voice_id:
        TTS voice used for text scripts.
    """

    def __init__(
        self,
        client: VendorHttpClient,
        registry: StreamRegistry,
        presenter_id: str = "",
        driver_id: str = "",
        voice_id: str = did_protocol.DEFAULT_VOICE_ID,
    ) -> None:
        self.client = client
        self.registry = registry
        self.presenter_id = presenter_id
        self.driver_id = driver_id
        self.voice_id = voice_id

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_stream(
        self,
        presenter_id: Optional[str] = None,
        driver_id: Optional[str] = None,
    ) -> StreamHandle:
        """Create a vendor stream and start tracking it.

        Raises
        ------
        VendorError
            On a vendor rejection or a response without ``id``/``session_id``.
        TransientNetworkError
            If the vendor could not be reached.
        """
        presenter = presenter_id or self.presenter_id
        driver = driver_id or self.driver_id
        logger.info(
            "[AVATAR] Creating stream with presenter=%s driver=%s", presenter, driver
        )

        try:
            data = self.client.post_json(
                did_protocol.STREAMS_PATH,
                did_protocol.build_create_payload(presenter, driver),
            )
            handle = did_protocol.parse_stream_response(data)
        except Exception:
            logger.exception("[AVATAR] Error creating stream")
            raise

        self.registry.register(
            AvatarStreamInfo(
                stream_id=handle.id,
                session_id=normalize_session_id(handle.session_id),
                status=StreamStatus.CONNECTING,
            )
        )
        logger.info(
            "[AVATAR] Stream created: stream_id=%s ice_servers=%d",
            handle.id, len(handle.ice_servers),
        )
        return handle

    # ------------------------------------------------------------------
    # Signaling
    # ------------------------------------------------------------------

    def start_stream(self, stream_id: str, session_id: str, sdp_answer: Any) -> bool:
        """Forward the browser's SDP answer; ``connected`` on success."""
        return self._forward(
            "start",
            stream_id,
            session_id,
            path=did_protocol.stream_path(stream_id, "sdp"),
            build=lambda sid: did_protocol.build_sdp_payload(sid, sdp_answer),
            on_success=StreamStatus.CONNECTED,
        )

    def send_ice_candidate(
        self,
        stream_id: str,
        session_id: str,
        candidate: Any,
        mid: Optional[str] = None,
        line_index: Optional[int] = None,
    ) -> bool:
        """Forward one ICE candidate. The candidate is not inspected."""
        return self._forward(
            "ice",
            stream_id,
            session_id,
            path=did_protocol.stream_path(stream_id, "ice"),
            build=lambda sid: did_protocol.build_ice_payload(sid, candidate, mid, line_index),
            on_success=None,
            mark_error=False,
        )

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    def send_text(
        self,
        stream_id: str,
        session_id: str,
        text: str,
        emotion: Optional[str] = None,
    ) -> bool:
        """Make the avatar speak ``text``; ``speaking`` on success.

        Returns False on a vendor rejection. Only network-level faults
        (``TransientNetworkError``) propagate.
        """
        logger.info("[AVATAR] Sending text to stream %s (%d chars)", stream_id, len(text))
        return self._forward(
            "text",
            stream_id,
            session_id,
            path=did_protocol.stream_path(stream_id),
            build=lambda sid: did_protocol.build_text_script_payload(
                sid, text, emotion=emotion, voice_id=self.voice_id
            ),
            on_success=StreamStatus.SPEAKING,
        )

    def send_audio(self, stream_id: str, session_id: str, audio_url: str) -> bool:
        """Make the avatar lip-sync a hosted audio file."""
        logger.info("[AVATAR] Sending audio to stream %s: %s", stream_id, audio_url)
        return self._forward(
            "audio",
            stream_id,
            session_id,
            path=did_protocol.stream_path(stream_id),
            build=lambda sid: did_protocol.build_audio_script_payload(sid, audio_url),
            on_success=StreamStatus.SPEAKING,
        )

    def mark_idle(self, stream_id: str) -> bool:
        """Record that the avatar finished speaking (``speaking -> connected``)."""
        with self.registry.locked(stream_id) as info:
            if info is None or info.status != StreamStatus.SPEAKING:
                return False
            self.registry.set_status(stream_id, StreamStatus.CONNECTED)
            return True

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close_stream(self, stream_id: str, session_id: str) -> bool:
        """Close the vendor stream; ``closed`` on success.

        Closing a stream that is already closed is a no-op reported as
        False; it never raises.
        """
        clean_session_id = normalize_session_id(session_id)
        path = did_protocol.stream_path(stream_id)

        with self.registry.locked(stream_id) as info:
            if info is not None and info.status == StreamStatus.CLOSED:
                logger.info("[AVATAR] Stream %s is already closed", stream_id)
                return False

            logger.info("[AVATAR] Closing stream %s", stream_id)
            try:
                success = self.client.delete(
                    path, did_protocol.build_close_payload(clean_session_id)
                )
            except TransientNetworkError:
                logger.exception("[AVATAR] Network error closing stream %s", stream_id)
                return False

            if success:
                self.registry.set_status(stream_id, StreamStatus.CLOSED)
                logger.info("[AVATAR] Stream closed: %s", stream_id)
            else:
                logger.warning("[AVATAR] Failed to close stream %s", stream_id)
            return success

    def close_idle_streams(self, max_idle_seconds: float) -> int:
        """Close every tracked stream idle for ``max_idle_seconds``."""
        closed = 0
        for info in self.registry.idle_streams(max_idle_seconds):
            logger.info(
                "[AVATAR] Reaping idle stream %s (status=%s)", info.stream_id, info.status.value
            )
            if self.close_stream(info.stream_id, info.session_id):
                closed += 1
            # Drop the record either way; the vendor session is expired by now.
            self.registry.remove(info.stream_id)
        self.registry.prune_closed(max_idle_seconds)
        return closed

    def get_stream(self, stream_id: str) -> Optional[AvatarStreamInfo]:
        return self.registry.get(stream_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _forward(
        self,
        operation: str,
        stream_id: str,
        session_id: str,
        path: str,
        build,
        on_success: Optional[StreamStatus],
        mark_error: bool = True,
    ) -> bool:
        """POST one signaling/script payload and update the stream state.

        Vendor rejections are logged and reported as False. Network faults
        mark the stream as errored and propagate.
        """
        clean_session_id = normalize_session_id(session_id)

        with self.registry.locked(stream_id) as info:
            if info is not None and info.status in _TERMINAL:
                logger.warning(
                    "[AVATAR] Refusing %s on stream %s in state %s",
                    operation, stream_id, info.status.value,
                )
                return False
            if info is None:
                logger.debug("[AVATAR] %s on untracked stream %s", operation, stream_id)

            try:
                success = self.client.post(path, build(clean_session_id))
            except TransientNetworkError:
                logger.exception(
                    "[AVATAR] Network error during %s on stream %s", operation, stream_id
                )
                if info is not None:
                    self.registry.set_status(stream_id, StreamStatus.ERROR)
                raise

            if info is None:
                return success

            if success:
                if on_success is not None:
                    self.registry.set_status(stream_id, on_success)
                else:
                    self.registry.touch(stream_id)
                logger.debug("[AVATAR] %s succeeded on stream %s", operation, stream_id)
            else:
                logger.warning("[AVATAR] %s rejected by vendor for stream %s", operation, stream_id)
                if mark_error:
                    self.registry.set_status(stream_id, StreamStatus.ERROR)
            return success
