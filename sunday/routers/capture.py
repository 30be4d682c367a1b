"""Microphone capture endpoints."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from sunday.config import get_settings
from sunday.database import get_db
from sunday.dependencies import get_capture_session
from sunday.errors import StorageError
from sunday.routers.recordings import queue_transcription
from sunday.schemas.recording import CaptureResult, CaptureStatusResponse, RecordingResponse
from sunday.services.capture import CaptureSession
from sunday.services.recording import get_recording_store

logger = logging.getLogger("sunday")

router = APIRouter(prefix="/api/v1/capture", tags=["Capture"])


def _finish(session: CaptureSession, db: Session, background_tasks: BackgroundTasks) -> CaptureResult:
    """Stop the session and persist what was captured."""
    captured = session.stop()
    if captured is None:
        return CaptureResult(state=session.state, hint=session.hint)

    try:
        recording = get_recording_store().save(
            db,
            captured.audio_bytes,
            captured.duration_ms,
            created_at=captured.created_at,
            mime_type=captured.mime_type,
        )
    except StorageError as e:
        logger.error("Captured audio was not saved: %s", e)
        return CaptureResult(state=session.state, hint=session.hint, persisted=False, error=str(e))

    session.last_capture = None
    if get_settings().AUTO_TRANSCRIBE:
        queue_transcription(db, recording.id, background_tasks)
    return CaptureResult(
        state=session.state,
        hint=session.hint,
        recording=RecordingResponse.model_validate(recording),
        persisted=True,
    )


@router.get("", response_model=CaptureStatusResponse)
def capture_status(session: CaptureSession = Depends(get_capture_session)) -> CaptureStatusResponse:
    """Current capture state and the hint shown next to the record control."""
    return CaptureStatusResponse(state=session.state, hint=session.hint, elapsed_ms=session.elapsed_ms)


@router.post("/start", response_model=CaptureStatusResponse)
def start_capture(session: CaptureSession = Depends(get_capture_session)) -> CaptureStatusResponse:
    """Open the microphone and start recording."""
    session.start()
    return CaptureStatusResponse(state=session.state, hint=session.hint, elapsed_ms=session.elapsed_ms)


@router.post("/stop", response_model=CaptureResult)
def stop_capture(
    background_tasks: BackgroundTasks,
    session: CaptureSession = Depends(get_capture_session),
    db: Session = Depends(get_db),
) -> CaptureResult:
    """Stop recording and save the clip. Stopping while idle does nothing."""
    return _finish(session, db, background_tasks)


@router.post("/toggle", response_model=CaptureResult)
def toggle_capture(
    background_tasks: BackgroundTasks,
    session: CaptureSession = Depends(get_capture_session),
    db: Session = Depends(get_db),
) -> CaptureResult:
    """Start when idle, stop and save when recording."""
    if session.is_recording:
        return _finish(session, db, background_tasks)
    session.start()
    return CaptureResult(state=session.state, hint=session.hint)
