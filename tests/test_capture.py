"""Tests for the capture session and capture endpoints."""

import io
import time
import wave
from datetime import datetime
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from sunday.errors import PermissionDenied, StorageError
from sunday.services.capture import IDLE_HINT, CaptureSession, CaptureState, format_elapsed
from sunday.services.recording import RecordingStore


def _session(microphone, monotonic, when=datetime(2026, 10, 18, 7, 34, 10)) -> CaptureSession:
    return CaptureSession(stream_factory=microphone, clock=lambda: when, monotonic=monotonic)


class TestCaptureSession:
    def test_starts_idle(self, microphone, monotonic):
        session = _session(microphone, monotonic)
        assert session.state == CaptureState.IDLE
        assert session.hint == IDLE_HINT
        assert session.elapsed_ms == 0

    def test_record_seven_seconds(self, microphone, monotonic, db_session: Session):
        """A 7-second morning note is stored with its local time and length."""
        session = _session(microphone, monotonic)
        session.start()
        assert session.state == CaptureState.RECORDING
        assert session.hint == "Recording... 0:00"

        microphone.streams[0].feed(7.0)
        monotonic.advance(7.0)
        captured = session.stop()

        assert session.state == CaptureState.IDLE
        assert session.hint == IDLE_HINT
        assert 6500 <= captured.duration_ms <= 7999
        with wave.open(io.BytesIO(captured.audio_bytes), "rb") as handle:
            assert handle.getframerate() == 16000
            assert handle.getsampwidth() == 2
            assert handle.getnframes() == 7 * 16000

        recording = RecordingStore().save(
            db_session, captured.audio_bytes, captured.duration_ms, created_at=captured.created_at
        )
        assert recording.created_at_local.hour == 7
        assert recording.created_at_local.minute == 34
        assert recording.transcription is None

    def test_stop_releases_stream(self, microphone, monotonic):
        session = _session(microphone, monotonic)
        session.start()
        session.stop()

        stream = microphone.streams[0]
        assert stream.stopped
        assert stream.closed

    def test_stop_when_idle_is_noop(self, microphone, monotonic):
        session = _session(microphone, monotonic)
        assert session.stop() is None
        session.start()
        session.stop()
        assert session.stop() is None
        assert session.state == CaptureState.IDLE

    def test_stream_closed_even_if_stop_fails(self, microphone, monotonic):
        session = _session(microphone, monotonic)
        session.start()
        stream = microphone.streams[0]

        def broken_stop():
            raise RuntimeError("Stream is not running")

        stream.stop = broken_stop
        assert session.stop() is not None
        assert stream.closed
        assert session.state == CaptureState.IDLE

    def test_permission_denied(self, microphone, monotonic):
        microphone.denied = True
        session = _session(microphone, monotonic)

        with pytest.raises(PermissionDenied):
            session.start()
        assert session.state == CaptureState.IDLE
        assert session.hint == IDLE_HINT

    def test_failed_start_releases_stream(self, microphone, monotonic):
        microphone.fail_on_start = True
        session = _session(microphone, monotonic)

        with pytest.raises(PermissionDenied):
            session.start()
        assert microphone.streams[0].closed
        assert session.state == CaptureState.IDLE

    def test_start_twice_opens_one_stream(self, microphone, monotonic):
        session = _session(microphone, monotonic)
        session.start()
        session.start()
        assert len(microphone.streams) == 1
        session.stop()

    def test_toggle(self, microphone, monotonic):
        session = _session(microphone, monotonic)
        assert session.toggle() is None
        assert session.is_recording
        monotonic.advance(2.0)
        captured = session.toggle()
        assert captured.duration_ms == 2000
        assert session.last_capture is captured
        assert not session.is_recording

    def test_restart_replaces_hint_ticker(self, microphone, monotonic):
        session = CaptureSession(stream_factory=microphone, monotonic=monotonic, hint_interval_ms=5)
        session.start()
        first = session._ticker
        session.stop()
        assert not first.is_alive()
        assert session.hint == IDLE_HINT

        session.start()
        second = session._ticker
        assert second is not first and second.is_alive()
        monotonic.advance(3.0)
        for _ in range(200):
            if session.hint == "Recording... 0:03":
                break
            time.sleep(0.005)
        assert session.hint == "Recording... 0:03"

        session.stop()
        assert not second.is_alive()
        assert session.hint == IDLE_HINT

    def test_format_elapsed(self):
        assert format_elapsed(0) == "0:00"
        assert format_elapsed(7_400) == "0:07"
        assert format_elapsed(65_000) == "1:05"
        assert format_elapsed(600_000) == "10:00"


class TestCaptureEndpoints:
    def test_status(self, client: TestClient):
        data = client.get("/api/v1/capture").json()
        assert data["state"] == "idle"
        assert data["hint"] == IDLE_HINT

    def test_start_and_stop_persists(self, client: TestClient, microphone):
        response = client.post("/api/v1/capture/start")
        assert response.status_code == 200
        assert response.json()["state"] == "recording"

        microphone.streams[0].feed(0.5)
        result = client.post("/api/v1/capture/stop").json()

        assert result["persisted"] is True
        assert result["state"] == "idle"
        assert result["recording"]["mime_type"] == "audio/wav"
        assert result["recording"]["transcription_state"] == "idle"
        assert client.get("/api/v1/recordings/").json()["total"] == 1

    def test_toggle(self, client: TestClient):
        assert client.post("/api/v1/capture/toggle").json()["state"] == "recording"
        result = client.post("/api/v1/capture/toggle").json()
        assert result["state"] == "idle"
        assert result["persisted"] is True

    def test_stop_while_idle(self, client: TestClient):
        result = client.post("/api/v1/capture/stop").json()
        assert result["recording"] is None
        assert result["persisted"] is False

    def test_permission_denied(self, client: TestClient, microphone):
        microphone.denied = True
        response = client.post("/api/v1/capture/start")
        assert response.status_code == 403
        assert "microphone" in response.json()["detail"]
        assert client.get("/api/v1/capture").json()["state"] == "idle"

    def test_storage_failure_keeps_capture(self, client: TestClient):
        client.post("/api/v1/capture/start")
        with patch(
            "sunday.services.recording.RecordingStore.save",
            side_effect=StorageError("Could not save recording: disk I/O error"),
        ):
            result = client.post("/api/v1/capture/stop").json()

        assert result["persisted"] is False
        assert "disk I/O error" in result["error"]
        assert client.app.state.capture_session.last_capture is not None
        assert client.get("/api/v1/recordings/").json()["total"] == 0
