"""Recording store: durable local persistence of audio clips and their metadata."""

import io
import logging
import time
import wave
from datetime import date, datetime
from pathlib import Path
from typing import Any

from fastapi import UploadFile
from sqlalchemy import update as sql_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sunday.config import get_settings
from sunday.errors import StorageError
from sunday.models.recording import CREATED_AT_FORMAT, Recording, TranscriptionState

logger = logging.getLogger("sunday")

ALLOWED_EXTENSIONS = {".mp3", ".m4a", ".mp4", ".wav", ".webm", ".ogg", ".flac"}
ALLOWED_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp4",
    "audio/x-m4a",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
    "audio/flac",
    "audio/x-flac",
    "video/mp4",  # iPhone voice memos shared via AirDrop/WhatsApp
}
UPDATABLE_FIELDS = {"transcription", "transcription_state", "transcription_error", "duration_ms"}


def format_local(moment: datetime) -> str:
    """Render a wall-clock time as stored, dropping any tzinfo without converting."""
    return moment.replace(tzinfo=None, microsecond=0).strftime(CREATED_AT_FORMAT)


def parse_local(value: str) -> datetime:
    """Parse a client-supplied local time. Offsets are discarded, not applied."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", ""))
    return parsed.replace(tzinfo=None, microsecond=0)


def wav_duration_ms(audio_bytes: bytes) -> int | None:
    """Duration of a WAV payload, or None if it is not a readable WAV file."""
    try:
        with wave.open(io.BytesIO(audio_bytes), "rb") as handle:
            frames = handle.getnframes()
            rate = handle.getframerate()
    except (wave.Error, EOFError):
        return None
    if not rate:
        return None
    return int(frames * 1000 / rate)


class RecordingStore:
    """CRUD over the recording table. Every write is committed before returning."""

    def validate_upload_metadata(self, filename: str, content_type: str | None) -> str | None:
        """Validate upload file metadata (extension + MIME). Returns error message or None if valid."""
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            return f"Unsupported file type '{ext}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"

        if (
            content_type
            and content_type not in ALLOWED_MIME_TYPES
            and not content_type.startswith("audio/")
            and content_type != "video/mp4"
        ):
            return f"Invalid content type '{content_type}'. Must be an audio file."

        return None

    async def read_upload(self, upload: UploadFile) -> bytes:
        """Read an uploaded file in chunks with a size limit.

        Raises ValueError if file exceeds max upload size.
        """
        settings = get_settings()
        max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
        buffer = bytearray()
        chunk_size = 1024 * 64

        while True:
            chunk = await upload.read(chunk_size)
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > max_bytes:
                raise ValueError(
                    f"File too large ({len(buffer) // (1024 * 1024)}MB). Maximum: {settings.MAX_UPLOAD_SIZE_MB}MB"
                )

        return bytes(buffer)

    def _new_id(self, db: Session) -> str:
        candidate = int(time.time() * 1000)
        while db.get(Recording, str(candidate)) is not None:
            candidate += 1
        return str(candidate)

    def save(
        self,
        db: Session,
        audio_bytes: bytes,
        duration_ms: int,
        created_at: datetime | None = None,
        mime_type: str = "audio/wav",
        original_filename: str | None = None,
    ) -> Recording:
        """Persist a new recording. `created_at` defaults to the current local wall-clock time."""
        try:
            recording = Recording(
                id=self._new_id(db),
                audio_blob=audio_bytes,
                mime_type=mime_type,
                original_filename=original_filename,
                duration_ms=max(int(duration_ms), 0),
                created_at=format_local(created_at or datetime.now()),
                transcription_state=TranscriptionState.IDLE,
            )
            db.add(recording)
            db.commit()
            db.refresh(recording)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not save recording: {e}") from e

        logger.info("Saved recording %s (%d ms, created %s)", recording.id, recording.duration_ms, recording.created_at)
        return recording

    def list_all(self, db: Session) -> list[Recording]:
        """All recordings, newest first."""
        try:
            return db.query(Recording).order_by(Recording.created_at.desc(), Recording.id.desc()).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list recordings: {e}") from e

    def list_by_date(self, db: Session, day: date) -> list[Recording]:
        """Recordings made on a local calendar day, newest first."""
        start = f"{day.isoformat()}T00:00:00"
        end = f"{day.isoformat()}T23:59:59"
        try:
            return (
                db.query(Recording)
                .filter(Recording.created_at >= start, Recording.created_at <= end)
                .order_by(Recording.created_at.desc(), Recording.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list recordings for {day}: {e}") from e

    def get(self, db: Session, recording_id: str) -> Recording | None:
        try:
            return db.get(Recording, recording_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load recording {recording_id}: {e}") from e

    def update(self, db: Session, recording_id: str, **fields: Any) -> Recording | None:
        """Apply a partial update keyed by id. Returns None if the recording no longer exists."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        recording = self.get(db, recording_id)
        if recording is None:
            return None
        try:
            for key, value in fields.items():
                setattr(recording, key, value)
            db.commit()
            db.refresh(recording)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not update recording {recording_id}: {e}") from e
        return recording

    def claim_for_transcription(self, db: Session, recording_id: str) -> bool:
        """Atomically move a recording to in_progress. False if it is missing, running, or finished."""
        try:
            result = db.execute(
                sql_update(Recording)
                .where(
                    Recording.id == recording_id,
                    Recording.transcription_state.in_(TranscriptionState.STARTABLE),
                )
                .values(
                    transcription_state=TranscriptionState.IN_PROGRESS,
                    transcription_error=None,
                    updated_at=datetime.now(),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not start transcription for {recording_id}: {e}") from e
        db.expire_all()
        return result.rowcount == 1

    def release_claim(self, db: Session, recording_id: str, reason: str) -> bool:
        """Mark an in_progress transcription as failed so it can be retried. False if it was not in progress."""
        db.rollback()
        try:
            result = db.execute(
                sql_update(Recording)
                .where(
                    Recording.id == recording_id,
                    Recording.transcription_state == TranscriptionState.IN_PROGRESS,
                )
                .values(
                    transcription_state=TranscriptionState.FAILED,
                    transcription=None,
                    transcription_error=reason,
                    updated_at=datetime.now(),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not release transcription of {recording_id}: {e}") from e
        db.expire_all()
        return result.rowcount == 1

    def recover_interrupted(self, db: Session) -> int:
        """Resolve transcriptions left in_progress by a previous process. Returns the count."""
        try:
            result = db.execute(
                sql_update(Recording)
                .where(Recording.transcription_state == TranscriptionState.IN_PROGRESS)
                .values(
                    transcription_state=TranscriptionState.FAILED,
                    transcription_error="Transcription interrupted",
                    updated_at=datetime.now(),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not recover interrupted transcriptions: {e}") from e
        if result.rowcount:
            logger.warning("Marked %d interrupted transcription(s) as failed", result.rowcount)
        return result.rowcount

    def delete(self, db: Session, recording_id: str) -> None:
        """Delete a recording. Deleting a missing id is a no-op."""
        try:
            db.query(Recording).filter(Recording.id == recording_id).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not delete recording {recording_id}: {e}") from e

    def clear(self, db: Session) -> None:
        """Delete every recording."""
        try:
            db.query(Recording).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not clear recordings: {e}") from e


_recording_store: RecordingStore | None = None


def get_recording_store() -> RecordingStore:
    """Get singleton recording store instance."""
    global _recording_store
    if _recording_store is None:
        _recording_store = RecordingStore()
    return _recording_store
