"""Pending schedule, approved archive and saved-day archive models."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from sunday.database import Base


class EntryStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PendingSchedule(Base):
    """The working set under review. At most one row exists at a time."""

    __tablename__ = "pending_schedule"

    id = Column(String(36), primary_key=True)
    date = Column(String(10), nullable=False)
    conversation_history = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class ScheduleEntry(Base):
    """One activity block of the pending schedule."""

    __tablename__ = "schedule_entry"

    id = Column(String(36), primary_key=True)
    pending_schedule_id = Column(
        String(36), ForeignKey("pending_schedule.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    start_time = Column(String(16), nullable=False)
    end_time = Column(String(16), nullable=False)
    description = Column(Text, nullable=False)
    note = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=EntryStatus.PENDING)
    rejection_reason = Column(Text, nullable=True)


class ApprovedEntry(Base):
    """Append-only copy of an individually approved entry."""

    __tablename__ = "approved_entry"

    id = Column(String(36), primary_key=True)
    entry_id = Column(String(36), nullable=False, index=True)
    date = Column(String(10), nullable=False, index=True)
    start_time = Column(String(16), nullable=False)
    end_time = Column(String(16), nullable=False)
    description = Column(Text, nullable=False)
    note = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=False, default=datetime.now)


class SavedSchedule(Base):
    """Append-only snapshot of a confirmed day, used for insights and export."""

    __tablename__ = "saved_schedule"

    id = Column(String(36), primary_key=True)
    date = Column(String(10), nullable=False, index=True)
    schedule_data = Column(JSON, nullable=False)
    conversation_history = Column(JSON, nullable=False, default=list)
    saved_at = Column(DateTime, nullable=False, default=datetime.now)
