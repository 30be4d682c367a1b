"""Tests for transcription strategies and the transcription lifecycle."""

import io
from dataclasses import dataclass
from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from sunday.config import get_settings
from sunday.errors import StorageError, TranscriptionError
from sunday.models.recording import TranscriptionState
from sunday.services.recording import RecordingStore
from sunday.services.transcription import (
    NoSpeech,
    RemoteTranscriber,
    Transcript,
    TranscriptionFailure,
    TranscriptionService,
    WhisperTranscriber,
)


@dataclass
class MockSegment:
    """Mock transcription segment."""

    start: float
    end: float
    text: str


def _remote() -> RemoteTranscriber:
    return RemoteTranscriber(api_key="xi-test", model_id="scribe_v2", url="https://stt.example/v1", timeout=5)


def _response(status: int, body) -> MagicMock:
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.json.return_value = body
    return response


class FakeTranscriber:
    name = "fake"

    def __init__(self, result):
        self.result = result
        self.calls = 0

    def transcribe(self, audio_bytes, filename, mime_type):
        self.calls += 1
        return self.result


class TestRemoteTranscriber:
    @patch("sunday.services.transcription.requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = _response(200, {"text": "  I just finished breakfast. "})

        result = _remote().transcribe(b"RIFF", "note.wav", "audio/wav")

        assert result == Transcript("I just finished breakfast.")
        kwargs = mock_post.call_args.kwargs
        assert kwargs["headers"] == {"xi-api-key": "xi-test"}
        assert kwargs["files"]["file"] == ("note.wav", b"RIFF", "audio/wav")
        assert kwargs["data"]["model_id"] == "scribe_v2"

    @patch("sunday.services.transcription.requests.post")
    def test_blank_text_is_no_speech(self, mock_post):
        mock_post.return_value = _response(200, {"text": "   "})
        assert _remote().transcribe(b"RIFF", "note.wav", "audio/wav") == NoSpeech()

    @patch("sunday.services.transcription.requests.post")
    def test_upstream_error_passes_through(self, mock_post):
        mock_post.return_value = _response(401, {"detail": {"message": "Invalid API key"}})

        with pytest.raises(TranscriptionError) as exc_info:
            _remote().request_transcript(b"RIFF", "note.wav", "audio/wav")
        assert exc_info.value.status == 401
        assert exc_info.value.message == "Invalid API key"

        assert _remote().transcribe(b"RIFF", "note.wav", "audio/wav") == TranscriptionFailure("Invalid API key")

    @patch("sunday.services.transcription.requests.post")
    def test_upstream_error_without_detail(self, mock_post):
        mock_post.return_value = _response(500, None)
        mock_post.return_value.json.side_effect = ValueError("not json")

        with pytest.raises(TranscriptionError) as exc_info:
            _remote().request_transcript(b"RIFF", "note.wav", "audio/wav")
        assert exc_info.value.message == "Transcription failed"
        assert exc_info.value.status == 500

    @patch("sunday.services.transcription.requests.post")
    def test_network_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(TranscriptionError) as exc_info:
            _remote().request_transcript(b"RIFF", "note.wav", "audio/wav")
        assert exc_info.value.status == 502

    def test_missing_key(self):
        transcriber = RemoteTranscriber(api_key="", model_id="scribe_v2", url="https://stt.example/v1", timeout=5)
        with pytest.raises(TranscriptionError, match="not configured"):
            transcriber.request_transcript(b"RIFF", "note.wav", "audio/wav")


class TestWhisperTranscriber:
    @patch("sunday.services.transcription.WhisperTranscriber._get_model")
    def test_joins_segments(self, mock_get_model):
        mock_model = MagicMock()
        mock_model.transcribe.return_value = (
            iter([MockSegment(0.0, 2.0, " Heading to the gym"), MockSegment(2.0, 4.0, "now. ")]),
            MagicMock(),
        )
        mock_get_model.return_value = mock_model

        result = WhisperTranscriber("base").transcribe(b"RIFF", "note.wav", "audio/wav")
        assert result == Transcript("Heading to the gym now.")

    @patch("sunday.services.transcription.WhisperTranscriber._get_model")
    def test_no_segments_is_no_speech(self, mock_get_model):
        mock_model = MagicMock()
        mock_model.transcribe.return_value = (iter([]), MagicMock())
        mock_get_model.return_value = mock_model

        assert WhisperTranscriber("base").transcribe(b"RIFF", "note.wav", "audio/wav") == NoSpeech()

    @patch("sunday.services.transcription.WhisperTranscriber._get_model")
    def test_decoder_error_is_failure(self, mock_get_model):
        mock_model = MagicMock()
        mock_model.transcribe.side_effect = RuntimeError("Invalid data found when processing input")
        mock_get_model.return_value = mock_model

        result = WhisperTranscriber("base").transcribe(b"garbage", "note.wav", "audio/wav")
        assert isinstance(result, TranscriptionFailure)
        assert "Invalid data" in result.reason


class TestTranscriptionService:
    def test_success_stores_text(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        service = TranscriptionService(FakeTranscriber(Transcript("Walked the dog")))

        updated = service.transcribe(db_session, recording.id)

        assert updated.transcription_state == TranscriptionState.DONE
        assert updated.transcription == "Walked the dog"
        assert updated.transcription_error is None

    def test_no_speech(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        updated = TranscriptionService(FakeTranscriber(NoSpeech())).transcribe(db_session, recording.id)

        assert updated.transcription_state == TranscriptionState.NO_SPEECH
        assert updated.transcription is None

    def test_failure_can_be_retried(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        failing = TranscriptionService(FakeTranscriber(TranscriptionFailure("Rate limited")))

        updated = failing.transcribe(db_session, recording.id)
        assert updated.transcription_state == TranscriptionState.FAILED
        assert updated.transcription_error == "Rate limited"

        retried = TranscriptionService(FakeTranscriber(Transcript("Lunch"))).transcribe(db_session, recording.id)
        assert retried.transcription_state == TranscriptionState.DONE
        assert retried.transcription == "Lunch"
        assert retried.transcription_error is None

    def test_second_trigger_while_running_is_ignored(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        transcriber = FakeTranscriber(Transcript("Lunch"))
        service = TranscriptionService(transcriber)

        assert service.begin(db_session, recording.id) is True
        unchanged = service.transcribe(db_session, recording.id)

        assert transcriber.calls == 0
        assert unchanged.transcription_state == TranscriptionState.IN_PROGRESS

    def test_finished_recording_is_not_retranscribed(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        transcriber = FakeTranscriber(Transcript("Lunch"))
        service = TranscriptionService(transcriber)

        service.transcribe(db_session, recording.id)
        service.transcribe(db_session, recording.id)
        assert transcriber.calls == 1

    def test_raising_transcriber_does_not_leave_in_progress(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        transcriber = MagicMock()
        transcriber.name = "broken"
        transcriber.transcribe.side_effect = RuntimeError("boom")

        updated = TranscriptionService(transcriber).transcribe(db_session, recording.id)
        assert updated.transcription_state == TranscriptionState.FAILED
        assert "boom" in updated.transcription_error

    def test_failed_result_write_releases_claim(self, db_session: Session):
        recording = RecordingStore().save(db_session, b"RIFF", 1000)
        service = TranscriptionService(FakeTranscriber(Transcript("hello")))
        assert service.begin(db_session, recording.id) is True

        with patch(
            "sunday.services.recording.RecordingStore.update",
            side_effect=StorageError("Could not update recording: database is locked"),
        ):
            with pytest.raises(StorageError):
                service.run(db_session, recording.id)

        stored = RecordingStore().get(db_session, recording.id)
        assert stored.transcription_state == TranscriptionState.FAILED
        assert "database is locked" in stored.transcription_error

        retried = TranscriptionService(FakeTranscriber(Transcript("hello"))).transcribe(db_session, recording.id)
        assert retried.transcription_state == TranscriptionState.DONE

    def test_release_claim_only_touches_in_progress(self, db_session: Session):
        store = RecordingStore()
        recording = store.save(db_session, b"RIFF", 1000)
        assert store.release_claim(db_session, recording.id, "nope") is False
        assert store.get(db_session, recording.id).transcription_state == TranscriptionState.IDLE


class TestTranscriptionEndpoints:
    def _upload(self, client: TestClient) -> str:
        response = client.post(
            "/api/v1/recordings/",
            files={"file": ("note.wav", io.BytesIO(b"\x00" * 512), "audio/wav")},
        )
        assert response.status_code == 200
        return response.json()["id"]

    @patch("sunday.services.transcription.WhisperTranscriber._get_model")
    def test_transcribe_in_background(self, mock_get_model, client: TestClient):
        mock_model = MagicMock()
        mock_model.transcribe.return_value = (iter([MockSegment(0.0, 3.0, "Done with my run")]), MagicMock())
        mock_get_model.return_value = mock_model
        recording_id = self._upload(client)

        response = client.post(f"/api/v1/recordings/{recording_id}/transcribe")
        assert response.status_code == 200
        assert response.json()["detail"] == "Transcription started"

        recording = client.get(f"/api/v1/recordings/{recording_id}").json()
        assert recording["transcription_state"] == "done"
        assert recording["transcription"] == "Done with my run"

        again = client.post(f"/api/v1/recordings/{recording_id}/transcribe")
        assert again.json()["transcription_state"] == "done"
        assert mock_model.transcribe.call_count == 1

    @patch("sunday.services.transcription.WhisperTranscriber._get_model")
    def test_auto_transcribe_on_upload(self, mock_get_model, client: TestClient, monkeypatch):
        monkeypatch.setattr(get_settings(), "AUTO_TRANSCRIBE", True)
        mock_model = MagicMock()
        mock_model.transcribe.return_value = (iter([MockSegment(0.0, 3.0, "Coffee with Sam")]), MagicMock())
        mock_get_model.return_value = mock_model

        recording_id = self._upload(client)

        recording = client.get(f"/api/v1/recordings/{recording_id}").json()
        assert recording["transcription_state"] == "done"
        assert recording["transcription"] == "Coffee with Sam"

    def test_transcribe_not_found(self, client: TestClient):
        assert client.post("/api/v1/recordings/999/transcribe").status_code == 404

    @patch("sunday.services.transcription.WhisperTranscriber._get_model")
    def test_background_write_failure_can_be_retried(self, mock_get_model, client: TestClient):
        mock_model = MagicMock()
        mock_model.transcribe.return_value = (iter([MockSegment(0.0, 1.0, "Made tea")]), MagicMock())
        mock_get_model.return_value = mock_model
        recording_id = self._upload(client)

        with patch(
            "sunday.services.recording.RecordingStore.update",
            side_effect=StorageError("Could not update recording: disk I/O error"),
        ):
            assert client.post(f"/api/v1/recordings/{recording_id}/transcribe").status_code == 200

        assert client.get(f"/api/v1/recordings/{recording_id}").json()["transcription_state"] == "failed"
        retry = client.post(f"/api/v1/recordings/{recording_id}/transcribe")
        assert retry.json()["detail"] == "Transcription started"


class TestTranscribeProxy:
    def test_missing_file(self, client: TestClient):
        response = client.post("/api/v1/transcribe")
        assert response.status_code == 400
        assert response.json() == {"error": "No audio file provided"}

    def test_not_configured(self, client: TestClient):
        response = client.post(
            "/api/v1/transcribe",
            files={"file": ("note.wav", io.BytesIO(b"RIFF"), "audio/wav")},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Transcription service not configured"}

    @patch("sunday.services.transcription.requests.post")
    def test_forwards_text(self, mock_post, client: TestClient, monkeypatch):
        monkeypatch.setattr(get_settings(), "ELEVENLABS_API_KEY", "xi-test")
        mock_post.return_value = _response(200, {"text": "Stuck in traffic"})

        response = client.post(
            "/api/v1/transcribe",
            files={"file": ("note.wav", io.BytesIO(b"RIFF"), "audio/wav")},
        )
        assert response.status_code == 200
        assert response.json() == {"text": "Stuck in traffic"}

    @patch("sunday.services.transcription.requests.post")
    def test_forwards_upstream_error(self, mock_post, client: TestClient, monkeypatch):
        monkeypatch.setattr(get_settings(), "ELEVENLABS_API_KEY", "xi-test")
        mock_post.return_value = _response(429, {"detail": {"message": "Too many concurrent requests"}})

        response = client.post(
            "/api/v1/transcribe",
            files={"file": ("note.wav", io.BytesIO(b"RIFF"), "audio/wav")},
        )
        assert response.status_code == 429
        assert response.json() == {"error": "Too many concurrent requests"}

    @patch("sunday.services.transcription.requests.post")
    def test_unreadable_success_body(self, mock_post, client: TestClient, monkeypatch):
        monkeypatch.setattr(get_settings(), "ELEVENLABS_API_KEY", "xi-test")
        response = _response(200, None)
        response.json.side_effect = ValueError("Expecting value")
        mock_post.return_value = response

        result = client.post(
            "/api/v1/transcribe",
            files={"file": ("note.wav", io.BytesIO(b"RIFF"), "audio/wav")},
        )
        assert result.status_code == 502
        assert "unreadable" in result.json()["error"]
