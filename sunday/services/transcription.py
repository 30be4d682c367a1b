"""Transcription client: remote speech-to-text with an on-device faster-whisper fallback."""

import io
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import requests
from sqlalchemy.orm import Session

from sunday.config import get_settings
from sunday.errors import StorageError, TranscriptionError
from sunday.models.recording import Recording, TranscriptionState
from sunday.services.recording import get_recording_store

logger = logging.getLogger("sunday")


@dataclass(frozen=True)
class Transcript:
    """Speech was recognised."""

    text: str


@dataclass(frozen=True)
class NoSpeech:
    """The audio was processed but contained no recognisable speech."""


@dataclass(frozen=True)
class TranscriptionFailure:
    """The attempt failed; `reason` is shown to the user as-is."""

    reason: str


TranscriptionResult = Transcript | NoSpeech | TranscriptionFailure


def _from_text(text: str | None) -> TranscriptionResult:
    cleaned = (text or "").strip()
    return Transcript(cleaned) if cleaned else NoSpeech()


class Transcriber(Protocol):
    name: str

    def transcribe(self, audio_bytes: bytes, filename: str, mime_type: str) -> TranscriptionResult: ...


class RemoteTranscriber:
    """Uploads audio to the ElevenLabs speech-to-text endpoint."""

    name = "remote"

    def __init__(self, api_key: str, model_id: str, url: str, timeout: int, language: str | None = None) -> None:
        self.api_key = api_key
        self.model_id = model_id
        self.url = url
        self.timeout = timeout
        self.language = language

    def request_transcript(self, audio_bytes: bytes, filename: str, mime_type: str) -> str:
        """Forward one audio file and return the transcript text.

        Raises TranscriptionError carrying the upstream status and message unchanged.
        """
        if not self.api_key:
            raise TranscriptionError("Transcription service not configured", status=500)

        data = {"model_id": self.model_id}
        if self.language:
            data["language_code"] = self.language
        try:
            response = requests.post(
                self.url,
                headers={"xi-api-key": self.api_key},
                files={"file": (filename, audio_bytes, mime_type)},
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TranscriptionError(f"Transcription service unreachable: {e}", status=502) from e

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = {}
            detail = body.get("detail") if isinstance(body, dict) else None
            message = detail.get("message") if isinstance(detail, dict) else detail
            raise TranscriptionError(message or "Transcription failed", status=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise TranscriptionError("Transcription service returned an unreadable response", status=502) from e
        if not isinstance(body, dict):
            raise TranscriptionError("Transcription service returned an unreadable response", status=502)
        return body.get("text") or ""

    def transcribe(self, audio_bytes: bytes, filename: str, mime_type: str) -> TranscriptionResult:
        try:
            return _from_text(self.request_transcript(audio_bytes, filename, mime_type))
        except TranscriptionError as e:
            return TranscriptionFailure(e.message)


class WhisperTranscriber:
    """On-device transcription using faster-whisper."""

    name = "local"

    def __init__(self, model_size: str, language: str | None = None) -> None:
        self.model_size = model_size
        self.language = language
        self._model = None

    def _get_model(self):
        """Lazy-load the whisper model."""
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(self.model_size, device="cpu", compute_type="int8")
        return self._model

    def transcribe(self, audio_bytes: bytes, filename: str, mime_type: str) -> TranscriptionResult:
        try:
            model = self._get_model()
            segments_iter, _info = model.transcribe(io.BytesIO(audio_bytes), beam_size=5, language=self.language)
            text = " ".join(seg.text.strip() for seg in segments_iter)
        except Exception as e:  # decoder and model errors surface as many types
            logger.exception("On-device transcription failed")
            return TranscriptionFailure(f"Transcription failed: {e}")
        return _from_text(text)


def build_transcriber() -> Transcriber:
    """Pick the configured strategy. Remote is preferred whenever a key is available."""
    settings = get_settings()
    backend = settings.TRANSCRIPTION_BACKEND
    if backend == "local" or (backend not in ("remote", "local") and not settings.ELEVENLABS_API_KEY):
        return WhisperTranscriber(settings.WHISPER_MODEL_SIZE, language=settings.TRANSCRIPTION_LANGUAGE)
    return build_remote_transcriber()


def build_remote_transcriber() -> RemoteTranscriber:
    settings = get_settings()
    return RemoteTranscriber(
        api_key=settings.ELEVENLABS_API_KEY,
        model_id=settings.ELEVENLABS_MODEL_ID,
        url=settings.ELEVENLABS_URL,
        timeout=settings.TRANSCRIPTION_TIMEOUT_SECONDS,
        language=settings.TRANSCRIPTION_LANGUAGE,
    )


class TranscriptionService:
    """Drives a recording through idle -> in_progress -> done/no_speech/failed."""

    def __init__(self, transcriber: Transcriber | None = None) -> None:
        self._transcriber = transcriber

    @property
    def transcriber(self) -> Transcriber:
        if self._transcriber is None:
            self._transcriber = build_transcriber()
        return self._transcriber

    def begin(self, db: Session, recording_id: str) -> bool:
        """Claim the recording for transcription. False means another attempt owns it or it is finished."""
        return get_recording_store().claim_for_transcription(db, recording_id)

    def run(self, db: Session, recording_id: str) -> Recording | None:
        """Transcribe a recording already claimed with `begin` and store the outcome."""
        store = get_recording_store()
        recording = store.get(db, recording_id)
        if recording is None:
            return None

        started = time.time()
        try:
            result = self.transcriber.transcribe(
                recording.audio_blob,
                recording.original_filename or f"{recording.id}.wav",
                recording.mime_type,
            )
        except Exception as e:  # strategies normalise their own errors; this guards the in_progress flag
            logger.exception("Transcriber raised for recording %s", recording_id)
            result = TranscriptionFailure(f"Transcription failed: {e}")

        try:
            updated = store.update(db, recording_id, **self._fields_for(result))
        except StorageError as e:
            logger.error("Could not store transcription of %s: %s", recording_id, e)
            store.release_claim(db, recording_id, f"Could not save transcription: {e}")
            raise
        logger.info(
            "Transcription of %s via %s resolved to %s in %.2fs",
            recording_id,
            self.transcriber.name,
            type(result).__name__,
            time.time() - started,
        )
        return updated

    def transcribe(self, db: Session, recording_id: str) -> Recording | None:
        """Claim and run in one step. A recording already in progress or finished is returned unchanged."""
        if not self.begin(db, recording_id):
            return get_recording_store().get(db, recording_id)
        return self.run(db, recording_id)

    @staticmethod
    def _fields_for(result: TranscriptionResult) -> dict:
        if isinstance(result, Transcript):
            return {
                "transcription_state": TranscriptionState.DONE,
                "transcription": result.text,
                "transcription_error": None,
            }
        if isinstance(result, NoSpeech):
            return {
                "transcription_state": TranscriptionState.NO_SPEECH,
                "transcription": None,
                "transcription_error": None,
            }
        return {
            "transcription_state": TranscriptionState.FAILED,
            "transcription": None,
            "transcription_error": result.reason,
        }


_transcription_service: TranscriptionService | None = None


def get_transcription_service() -> TranscriptionService:
    """Get singleton transcription service instance."""
    global _transcription_service
    if _transcription_service is None:
        _transcription_service = TranscriptionService()
    return _transcription_service
