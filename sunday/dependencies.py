"""Dependencies for the device-owning components kept on app.state."""

from fastapi import Request

from sunday.services.capture import CaptureSession
from sunday.services.playback import PlaybackController


def get_capture_session(request: Request) -> CaptureSession:
    """The app's single capture session, created in the lifespan hook."""
    return request.app.state.capture_session


def get_playback_controller(request: Request) -> PlaybackController:
    """The app's single playback slot, created in the lifespan hook."""
    return request.app.state.playback_controller
