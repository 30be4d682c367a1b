"""API routers."""

from sunday.routers.capture import router as capture_router
from sunday.routers.insights import router as insights_router
from sunday.routers.playback import router as playback_router
from sunday.routers.recordings import router as recordings_router
from sunday.routers.saved_schedules import router as saved_schedules_router
from sunday.routers.schedule import router as schedule_router
from sunday.routers.transcribe import router as transcribe_router

__all__ = [
    "capture_router",
    "recordings_router",
    "playback_router",
    "transcribe_router",
    "schedule_router",
    "saved_schedules_router",
    "insights_router",
]
