"""Sunday - voice journaling that turns spoken notes into a reviewed daily schedule."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

import sunday.models.recording  # noqa: F401
import sunday.models.schedule  # noqa: F401
from sunday.config import get_settings
from sunday.database import Base, SessionLocal, engine
from sunday.errors import (
    InvalidTransition,
    MalformedResponse,
    NoTranscripts,
    PermissionDenied,
    PlaybackError,
    StorageError,
    SynthesisError,
    SynthesisInProgress,
    TranscriptionError,
)
from sunday.rate_limit import limiter
from sunday.routers import (
    capture_router,
    insights_router,
    playback_router,
    recordings_router,
    saved_schedules_router,
    schedule_router,
    transcribe_router,
)
from sunday.services.capture import CaptureSession
from sunday.services.playback import PlaybackController
from sunday.services.recording import get_recording_store

# Logging
logger = logging.getLogger("sunday")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    for warning in settings.validate():
        logger.warning(warning)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        get_recording_store().recover_interrupted(db)
    finally:
        db.close()

    # Tests install fakes before startup.
    if not hasattr(app.state, "capture_session"):
        app.state.capture_session = CaptureSession(
            sample_rate=settings.CAPTURE_SAMPLE_RATE,
            channels=settings.CAPTURE_CHANNELS,
            device=settings.CAPTURE_DEVICE or None,
            hint_interval_ms=settings.HINT_INTERVAL_MS,
        )
    if not hasattr(app.state, "playback_controller"):
        app.state.playback_controller = PlaybackController()

    logger.info("Sunday started (env=%s)", settings.APP_ENV)
    yield

    app.state.capture_session.stop()
    app.state.playback_controller.stop()


app = FastAPI(title="Sunday", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    MAX_BODY_SIZE = (get_settings().MAX_UPLOAD_SIZE_MB + 5) * 1024 * 1024  # slightly above max upload

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and int(content_length) > self.MAX_BODY_SIZE:
            return JSONResponse(status_code=413, content={"detail": "Request body too large"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        # Log state-changing operations
        if request.method in ("POST", "DELETE") and request.url.path.startswith("/api/v1/"):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )

        return response


app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(AuditLogMiddleware)

# API routers
app.include_router(capture_router)
app.include_router(recordings_router)
app.include_router(playback_router)
app.include_router(transcribe_router)
app.include_router(schedule_router)
app.include_router(saved_schedules_router)
app.include_router(insights_router)


# --- Error handlers ---
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Handle rate limit exceeded."""
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded. Try again later."})


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied) -> Response:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> Response:
    logger.error("Storage error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(TranscriptionError)
async def transcription_error_handler(request: Request, exc: TranscriptionError) -> Response:
    return JSONResponse(status_code=exc.status, content={"detail": exc.message})


@app.exception_handler(SynthesisError)
async def synthesis_error_handler(request: Request, exc: SynthesisError) -> Response:
    logger.warning("Schedule synthesis failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc), "upstream_status": exc.status})


@app.exception_handler(MalformedResponse)
async def malformed_response_handler(request: Request, exc: MalformedResponse) -> Response:
    return JSONResponse(status_code=502, content={"detail": str(exc), "raw_text": exc.raw_text})


@app.exception_handler(PlaybackError)
async def playback_error_handler(request: Request, exc: PlaybackError) -> Response:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidTransition)
@app.exception_handler(SynthesisInProgress)
async def conflict_handler(request: Request, exc: Exception) -> Response:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NoTranscripts)
async def no_transcripts_handler(request: Request, exc: NoTranscripts) -> Response:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# --- Health check ---
@app.get("/api/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "app": "sunday", "version": "0.1.0"}
