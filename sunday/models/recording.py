"""Recording model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, LargeBinary, String, Text

from sunday.database import Base

# Local-naive wall-clock format; never converted to UTC.
CREATED_AT_FORMAT = "%Y-%m-%dT%H:%M:%S"


class TranscriptionState:
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    NO_SPEECH = "no_speech"
    FAILED = "failed"

    # States from which a new transcription attempt may start.
    STARTABLE = (IDLE, FAILED)


class Recording(Base):
    """One captured or uploaded audio clip."""

    __tablename__ = "recording"

    id = Column(String(32), primary_key=True)
    audio_blob = Column(LargeBinary, nullable=False)
    mime_type = Column(String(128), nullable=False, default="audio/wav")
    original_filename = Column(String(512), nullable=True)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(String(19), nullable=False, index=True)
    transcription_state = Column(String(16), nullable=False, default=TranscriptionState.IDLE)
    transcription = Column(Text, nullable=True)
    transcription_error = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    @property
    def created_at_local(self) -> datetime:
        return datetime.strptime(self.created_at, CREATED_AT_FORMAT)
