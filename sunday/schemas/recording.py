"""Pydantic schemas for recording and capture endpoints."""

from datetime import datetime

from pydantic import BaseModel


class RecordingResponse(BaseModel):
    id: str
    created_at: datetime
    duration_ms: int
    mime_type: str
    original_filename: str | None = None
    transcription_state: str
    transcription: str | None = None
    transcription_error: str | None = None

    model_config = {"from_attributes": True}


class RecordingListResponse(BaseModel):
    items: list[RecordingResponse]
    total: int


class TranscribeResponse(BaseModel):
    detail: str
    transcription_state: str


class CaptureStatusResponse(BaseModel):
    state: str
    hint: str
    elapsed_ms: int = 0


class CaptureResult(BaseModel):
    state: str
    hint: str
    recording: RecordingResponse | None = None
    persisted: bool = False
    error: str | None = None


class PlaybackStatusResponse(BaseModel):
    recording_id: str | None = None
    progress: float = 0.0
