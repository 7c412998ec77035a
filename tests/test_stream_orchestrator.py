"""Tests for runtime.agents.stream_orchestrator and the idle-stream reaper."""

import httpx
import pytest

from exceptions.exceptions import NotFoundError, TransientNetworkError, VendorError
from runtime.agents.stream_orchestrator import AvatarStreamOrchestrator
from runtime.agents.stream_reaper import StreamReaper
from runtime.models.session_models import AvatarStreamInfo, StreamStatus
from runtime.store.stream_store import StreamRegistry


@pytest.fixture
def orchestrator(did_client, clock):
    return AvatarStreamOrchestrator(
        did_client,
        StreamRegistry(clock=clock),
        presenter_id="pres_default",
        driver_id="drv_default",
        voice_id="en-US-JennyNeural",
    )


def _status(orchestrator, stream_id="strm_1"):
    return orchestrator.get_stream(stream_id).status


class TestCreate:
    def test_returns_handle_and_tracks_stream(self, orchestrator, vendor):
        handle = orchestrator.create_stream()

        assert handle.id == "strm_1"
        assert handle.offer == {"type": "offer", "sdp": "v=0"}
        assert handle.ice_servers[0].urls == ["stun:stun.example.com"]

        info = orchestrator.get_stream("strm_1")
        assert info.status == StreamStatus.CONNECTING
        assert info.session_id == "sess123"

        body = vendor.calls("POST", "/clips/streams")[0].json
        assert body == {"presenter_id": "pres_default", "driver_id": "drv_default"}

    def test_explicit_ids_override_defaults(self, orchestrator, vendor):
        orchestrator.create_stream("pres_x", "drv_y")
        body = vendor.calls("POST", "/clips/streams")[0].json
        assert body == {"presenter_id": "pres_x", "driver_id": "drv_y"}

    def test_empty_ice_servers(self, orchestrator, vendor):
        vendor.on("POST", "/clips/streams", body={"id": "s2", "session_id": "abc", "ice_servers": []})
        handle = orchestrator.create_stream()
        assert handle.ice_servers == []

    def test_missing_id_raises_and_tracks_nothing(self, orchestrator, vendor):
        vendor.on("POST", "/clips/streams", body={"session_id": "abc"})
        with pytest.raises(VendorError):
            orchestrator.create_stream()
        assert orchestrator.registry.list_streams() == []

    def test_vendor_rejection_raises(self, orchestrator, vendor):
        vendor.on("POST", "/clips/streams", status=401, body={"message": "Unauthorized"})
        with pytest.raises(VendorError):
            orchestrator.create_stream()


class TestLifecycle:
    def test_happy_path(self, orchestrator, vendor):
        orchestrator.create_stream()
        assert orchestrator.start_stream("strm_1", "sess123", {"type": "answer", "sdp": "v=0"})
        assert _status(orchestrator) == StreamStatus.CONNECTED

        assert orchestrator.send_ice_candidate("strm_1", "sess123", "candidate:1", "0", 0)
        assert _status(orchestrator) == StreamStatus.CONNECTED

        assert orchestrator.send_text("strm_1", "sess123", "Hello", "happy")
        assert _status(orchestrator) == StreamStatus.SPEAKING

        assert orchestrator.mark_idle("strm_1")
        assert _status(orchestrator) == StreamStatus.CONNECTED

        assert orchestrator.close_stream("strm_1", "sess123")
        assert _status(orchestrator) == StreamStatus.CLOSED

        script = vendor.calls("POST", "/clips/streams/strm_1")[0].json
        assert script["config"]["driver_expressions"] == {"expression": "happy"}

    def test_cookie_session_id_is_normalized_on_every_call(self, orchestrator, vendor):
        orchestrator.create_stream()
        cookie = "AWSALB=sess123; AWSALBCORS=sess123; Path=/"
        orchestrator.start_stream("strm_1", cookie, "answer")
        orchestrator.send_ice_candidate("strm_1", cookie, "candidate:1")
        orchestrator.send_text("strm_1", cookie, "hi")
        orchestrator.close_stream("strm_1", cookie)

        sent = [r.json["session_id"] for r in vendor.requests if r.json and "session_id" in r.json]
        assert sent == ["sess123"] * 4

    def test_close_twice_is_not_an_error(self, orchestrator, vendor):
        orchestrator.create_stream()
        assert orchestrator.close_stream("strm_1", "sess123") is True
        assert orchestrator.close_stream("strm_1", "sess123") is False
        assert len(vendor.calls("DELETE", "/clips/streams/strm_1")) == 1

    def test_rejected_send_marks_error_and_blocks_further_sends(self, orchestrator, vendor):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")
        vendor.on("POST", "/clips/streams/strm_1", status=400, body={"kind": "ValidationError"})

        assert orchestrator.send_text("strm_1", "sess123", "Hello") is False
        assert _status(orchestrator) == StreamStatus.ERROR

        vendor.on("POST", "/clips/streams/strm_1", status=200, body={})
        assert orchestrator.send_text("strm_1", "sess123", "again") is False
        assert len(vendor.calls("POST", "/clips/streams/strm_1")) == 1

    def test_errored_stream_can_still_be_closed(self, orchestrator, vendor):
        orchestrator.create_stream()
        vendor.on("POST", "/clips/streams/strm_1/sdp", status=400)
        assert orchestrator.start_stream("strm_1", "sess123", "answer") is False
        assert orchestrator.close_stream("strm_1", "sess123") is True
        assert _status(orchestrator) == StreamStatus.CLOSED

    def test_rejected_ice_candidate_does_not_mark_error(self, orchestrator, vendor):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")
        vendor.on("POST", "/clips/streams/strm_1/ice", status=400)
        assert orchestrator.send_ice_candidate("strm_1", "sess123", "bad") is False
        assert _status(orchestrator) == StreamStatus.CONNECTED

    def test_network_fault_marks_error_and_propagates(self, orchestrator, vendor):
        orchestrator.create_stream()
        vendor.on(
            "POST", "/clips/streams/strm_1/sdp", exc=httpx.ConnectError("refused")
        )
        with pytest.raises(TransientNetworkError):
            orchestrator.start_stream("strm_1", "sess123", "answer")
        assert _status(orchestrator) == StreamStatus.ERROR

    def test_untracked_stream_is_forwarded(self, orchestrator, vendor):
        assert orchestrator.send_text("unknown", "AWSALB=abc; x", "hi") is True
        request = vendor.calls("POST", "/clips/streams/unknown")[0]
        assert request.json["session_id"] == "abc"
        assert orchestrator.get_stream("unknown") is None

    def test_mark_idle_only_from_speaking(self, orchestrator):
        orchestrator.create_stream()
        assert orchestrator.mark_idle("strm_1") is False
        assert orchestrator.mark_idle("missing") is False

    def test_send_audio(self, orchestrator, vendor):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")
        assert orchestrator.send_audio("strm_1", "sess123", "https://host/a.mp3")
        script = vendor.calls("POST", "/clips/streams/strm_1")[0].json["script"]
        assert script == {"type": "audio", "audio_url": "https://host/a.mp3"}
        assert _status(orchestrator) == StreamStatus.SPEAKING


class TestIdleStreams:
    def test_close_idle_streams(self, orchestrator, vendor, clock):
        orchestrator.create_stream()
        orchestrator.start_stream("strm_1", "sess123", "answer")

        assert orchestrator.close_idle_streams(60) == 0
        clock.advance(61)
        assert orchestrator.close_idle_streams(60) == 1

        delete = vendor.calls("DELETE", "/clips/streams/strm_1")[0]
        assert delete.json == {"session_id": "sess123"}
        assert orchestrator.get_stream("strm_1") is None

    def test_activity_postpones_reaping(self, orchestrator, clock):
        orchestrator.create_stream()
        clock.advance(50)
        orchestrator.start_stream("strm_1", "sess123", "answer")
        clock.advance(50)
        assert orchestrator.close_idle_streams(60) == 0

    def test_reaper_sweep(self, orchestrator, clock):
        orchestrator.create_stream()
        clock.advance(120)
        reaper = StreamReaper(orchestrator, interval_seconds=3600, max_idle_seconds=60)
        assert reaper.sweep() == 1
        assert reaper.sweep() == 0

    def test_reaper_sweep_survives_failures(self, orchestrator, monkeypatch):
        def boom(max_idle_seconds):
            raise RuntimeError("registry exploded")

        monkeypatch.setattr(orchestrator, "close_idle_streams", boom)
        reaper = StreamReaper(orchestrator, interval_seconds=3600, max_idle_seconds=60)
        assert reaper.sweep() == 0

    def test_reaper_start_stop(self, orchestrator):
        reaper = StreamReaper(orchestrator, interval_seconds=3600, max_idle_seconds=60)
        reaper.start()
        assert reaper.running
        reaper.stop()
        assert not reaper.running


class TestRegistry:
    def test_lookup_and_remove(self, clock):
        registry = StreamRegistry(clock=clock)
        registry.register(AvatarStreamInfo(stream_id="s1", session_id="abc"))
        handle = registry.open_handle("s1")

        assert registry.get("s1").session_id == "abc"
        assert registry.get("s2") is None

        registry.remove("s1")
        assert registry.get("s1") is None
        assert registry.list_handles() == []
        with pytest.raises(NotFoundError):
            registry.resolve_handle(handle)
