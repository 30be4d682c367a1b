"""Speech-to-text forwarding endpoint."""

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from sunday.errors import TranscriptionError
from sunday.rate_limit import limiter
from sunday.services.recording import get_recording_store
from sunday.services.transcription import build_remote_transcriber

router = APIRouter(prefix="/api/v1/transcribe", tags=["Transcription"])


@router.post("")
@limiter.limit("30/minute")
async def transcribe_audio(request: Request, file: UploadFile | None = File(None)) -> JSONResponse:
    """Forward one audio file to the speech-to-text service and return `{"text"}`.

    Upstream failures come back as `{"error"}` with the upstream status code.
    """
    if file is None:
        return JSONResponse(status_code=400, content={"error": "No audio file provided"})

    try:
        audio_bytes = await get_recording_store().read_upload(file)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    transcriber = build_remote_transcriber()
    try:
        text = await run_in_threadpool(
            transcriber.request_transcript,
            audio_bytes,
            file.filename or "recording.wav",
            file.content_type or "audio/wav",
        )
    except TranscriptionError as e:
        return JSONResponse(status_code=e.status, content={"error": e.message})
    return JSONResponse(content={"text": text})
