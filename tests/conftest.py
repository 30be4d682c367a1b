"""Pytest configuration and fixtures."""

import os
import time

# Settings are read at import time; pin them before the app is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_TRANSCRIBE"] = "false"
os.environ["TRANSCRIPTION_BACKEND"] = "local"
os.environ["ELEVENLABS_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = "test-gemini-key"

import numpy as np  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sunday.database import Base, get_db  # noqa: E402
from sunday.errors import PlaybackError  # noqa: E402
from sunday.models.recording import Recording  # noqa: E402, F401
from sunday.models.schedule import ApprovedEntry, PendingSchedule, SavedSchedule, ScheduleEntry  # noqa: E402, F401
from sunday.services.capture import CaptureSession  # noqa: E402
from sunday.services.playback import UNSUPPORTED_FORMAT, PlaybackController  # noqa: E402


class FakeInputStream:
    """Stands in for a sounddevice input stream."""

    def __init__(self, callback, fail_on_start: bool = False):
        self.callback = callback
        self.fail_on_start = fail_on_start
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.fail_on_start:
            raise RuntimeError("Error starting stream: Unanticipated host error")
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def feed(self, seconds: float, sample_rate: int = 16000):
        """Deliver `seconds` of silence as one callback block."""
        frames = int(seconds * sample_rate)
        self.callback(np.zeros((frames, 1), dtype=np.int16), frames, None, None)


class FakeMicrophone:
    """Stream factory that records every stream it opens."""

    def __init__(self):
        self.streams: list[FakeInputStream] = []
        self.denied = False
        self.fail_on_start = False

    def __call__(self, sample_rate, channels, device, callback):
        if self.denied:
            raise RuntimeError("Error querying device -1")
        stream = FakeInputStream(callback, fail_on_start=self.fail_on_start)
        self.streams.append(stream)
        return stream


class FakePlayer:
    def __init__(self, audio_bytes, mime_type, on_progress, on_finished):
        if mime_type not in ("audio/wav", "audio/x-wav"):
            raise PlaybackError(UNSUPPORTED_FORMAT)
        self.audio_bytes = audio_bytes
        self.on_progress = on_progress
        self.on_finished = on_finished
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True


class FakeSpeaker:
    """Player factory that records every player it creates."""

    def __init__(self):
        self.players: list[FakePlayer] = []

    def __call__(self, audio_bytes, mime_type, on_progress, on_finished):
        player = FakePlayer(audio_bytes, mime_type, on_progress, on_finished)
        self.players.append(player)
        return player


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="microphone")
def microphone_fixture() -> FakeMicrophone:
    return FakeMicrophone()


@pytest.fixture(name="monotonic")
def monotonic_fixture() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture(name="speaker")
def speaker_fixture() -> FakeSpeaker:
    return FakeSpeaker()


@pytest.fixture(name="system_timezone")
def system_timezone_fixture(monkeypatch):
    """Switch the process-wide local timezone; the original zone is restored afterwards."""

    def apply(zone: str) -> None:
        monkeypatch.setenv("TZ", zone)
        time.tzset()

    yield apply
    monkeypatch.undo()
    time.tzset()


@pytest.fixture(name="client")
def client_fixture(db_session: Session, microphone: FakeMicrophone, speaker: FakeSpeaker):
    """Create a test client with overridden DB dependency, fake audio devices and no rate limiting."""
    from main import app
    from sunday.rate_limit import limiter
    from sunday.routers import recordings as recordings_module

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # Point background transcription at the test DB session
    recordings_module._session_factory = lambda: db_session

    app.state.capture_session = CaptureSession(stream_factory=microphone)
    app.state.playback_controller = PlaybackController(player_factory=speaker)
    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()
    recordings_module._session_factory = None


@pytest.fixture(autouse=True)
def reset_singletons():
    """Service singletons must not carry state between tests."""
    yield
    import sunday.services.schedule as schedule_module
    import sunday.services.synthesizer as synthesizer_module
    import sunday.services.transcription as transcription_module

    schedule_module._schedule_manager = None
    synthesizer_module._schedule_synthesizer = None
    transcription_module._transcription_service = None
