"""Recording API endpoints."""

import logging
from datetime import date as date_type

from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Request, Response, UploadFile
from sqlalchemy.orm import Session

from sunday.config import get_settings
from sunday.database import SessionLocal, get_db
from sunday.dependencies import get_playback_controller
from sunday.errors import StorageError
from sunday.rate_limit import limiter
from sunday.schemas.recording import (
    PlaybackStatusResponse,
    RecordingListResponse,
    RecordingResponse,
    TranscribeResponse,
)
from sunday.services.playback import PlaybackController
from sunday.services.recording import get_recording_store, parse_local, wav_duration_ms
from sunday.services.transcription import get_transcription_service

logger = logging.getLogger("sunday")

router = APIRouter(prefix="/api/v1/recordings", tags=["Recordings"])

# Tests point background transcription at their own session.
_session_factory = None


def _open_session() -> tuple[Session, bool]:
    if _session_factory is None:
        return SessionLocal(), True
    return _session_factory(), False


def _run_transcription(recording_id: str) -> None:
    """Background task: transcribe a recording already claimed by `queue_transcription`."""
    db, own_session = _open_session()
    try:
        get_transcription_service().run(db, recording_id)
    except StorageError:
        logger.exception("Could not store transcription result for %s", recording_id)
        _release_claim(recording_id)
    finally:
        if own_session:
            db.close()


def _release_claim(recording_id: str) -> None:
    """Retry releasing the claim on a fresh session; a no-op when it was already released."""
    db, own_session = _open_session()
    try:
        get_recording_store().release_claim(db, recording_id, "Could not save transcription")
    except StorageError:
        logger.exception("Recording %s stays in progress until the next restart", recording_id)
    finally:
        if own_session:
            db.close()


def queue_transcription(db: Session, recording_id: str, background_tasks: BackgroundTasks) -> bool:
    """Claim the recording and schedule the work. False if an attempt is running or it is finished."""
    if not get_transcription_service().begin(db, recording_id):
        return False
    background_tasks.add_task(_run_transcription, recording_id)
    return True


def _get_or_404(db: Session, recording_id: str):
    recording = get_recording_store().get(db, recording_id)
    if not recording:
        raise HTTPException(status_code=404, detail="Recording not found")
    return recording


@router.post("/", response_model=RecordingResponse)
@limiter.limit("20/minute")
async def upload_recording(
    request: Request,
    file: UploadFile,
    background_tasks: BackgroundTasks,
    recorded_at: str | None = Form(None),
    duration_ms: int | None = Form(None),
    db: Session = Depends(get_db),
) -> RecordingResponse:
    """Import an audio file as a recording.

    `recorded_at` is the local wall-clock time the audio was made (e.g. the file's
    modification time on the phone); it defaults to now.
    """
    store = get_recording_store()

    error = store.validate_upload_metadata(file.filename or "", file.content_type)
    if error:
        raise HTTPException(status_code=400, detail=error)

    try:
        audio_bytes = await store.read_upload(file)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    if not audio_bytes:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    created_at = None
    if recorded_at:
        try:
            created_at = parse_local(recorded_at)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid recorded_at '{recorded_at}'") from None

    if duration_ms is None:
        duration_ms = wav_duration_ms(audio_bytes) or 0

    recording = store.save(
        db,
        audio_bytes,
        duration_ms,
        created_at=created_at,
        mime_type=file.content_type or "application/octet-stream",
        original_filename=file.filename,
    )
    if get_settings().AUTO_TRANSCRIBE:
        queue_transcription(db, recording.id, background_tasks)

    return RecordingResponse.model_validate(recording)


@router.get("/", response_model=RecordingListResponse)
def list_recordings(
    date: date_type | None = None,
    db: Session = Depends(get_db),
) -> RecordingListResponse:
    """List recordings newest first, optionally only those made on one local day."""
    store = get_recording_store()
    recordings = store.list_by_date(db, date) if date else store.list_all(db)
    return RecordingListResponse(
        items=[RecordingResponse.model_validate(r) for r in recordings],
        total=len(recordings),
    )


@router.delete("/")
def clear_recordings(
    db: Session = Depends(get_db),
    playback: PlaybackController = Depends(get_playback_controller),
) -> dict:
    """Delete every recording."""
    playback.stop()
    get_recording_store().clear(db)
    logger.info("All recordings cleared")
    return {"detail": "All recordings deleted"}


@router.get("/{recording_id}", response_model=RecordingResponse)
def get_recording(recording_id: str, db: Session = Depends(get_db)) -> RecordingResponse:
    """Get a single recording by ID."""
    return RecordingResponse.model_validate(_get_or_404(db, recording_id))


@router.delete("/{recording_id}")
def delete_recording(
    recording_id: str,
    db: Session = Depends(get_db),
    playback: PlaybackController = Depends(get_playback_controller),
) -> dict:
    """Delete a recording. Deleting an unknown id succeeds."""
    playback.forget(recording_id)
    get_recording_store().delete(db, recording_id)
    return {"detail": "Recording deleted"}


@router.get("/{recording_id}/audio")
def get_recording_audio(recording_id: str, db: Session = Depends(get_db)) -> Response:
    """Return the stored audio bytes."""
    recording = _get_or_404(db, recording_id)
    return Response(content=recording.audio_blob, media_type=recording.mime_type)


@router.post("/{recording_id}/transcribe", response_model=TranscribeResponse)
def transcribe_recording(
    recording_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> TranscribeResponse:
    """Start transcription in the background. Repeated requests while one runs are ignored."""
    recording = _get_or_404(db, recording_id)
    if not queue_transcription(db, recording_id, background_tasks):
        return TranscribeResponse(
            detail="Transcription already running or finished",
            transcription_state=recording.transcription_state,
        )
    return TranscribeResponse(detail="Transcription started", transcription_state="in_progress")


@router.post("/{recording_id}/play", response_model=PlaybackStatusResponse)
def play_recording(
    recording_id: str,
    db: Session = Depends(get_db),
    playback: PlaybackController = Depends(get_playback_controller),
) -> PlaybackStatusResponse:
    """Play a recording, or stop it if it is already playing. Any other playback stops first."""
    recording = _get_or_404(db, recording_id)
    playback.play(recording.id, recording.audio_blob, recording.mime_type)
    return PlaybackStatusResponse(recording_id=playback.current_id, progress=playback.progress)
