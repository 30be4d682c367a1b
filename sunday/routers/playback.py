"""Playback status endpoint."""

from fastapi import APIRouter, Depends

from sunday.dependencies import get_playback_controller
from sunday.schemas.recording import PlaybackStatusResponse
from sunday.services.playback import PlaybackController

router = APIRouter(prefix="/api/v1/playback", tags=["Playback"])


@router.get("", response_model=PlaybackStatusResponse)
def playback_status(playback: PlaybackController = Depends(get_playback_controller)) -> PlaybackStatusResponse:
    """Which recording is playing, and how far along it is (0-100)."""
    return PlaybackStatusResponse(recording_id=playback.current_id, progress=playback.progress)


@router.post("/stop", response_model=PlaybackStatusResponse)
def stop_playback(playback: PlaybackController = Depends(get_playback_controller)) -> PlaybackStatusResponse:
    playback.stop()
    return PlaybackStatusResponse()
