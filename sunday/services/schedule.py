"""Pending/approved schedule manager: the review state machine and its archives."""

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sunday.errors import InvalidTransition, NoTranscripts, StorageError, SynthesisInProgress
from sunday.models.recording import TranscriptionState
from sunday.models.schedule import ApprovedEntry, EntryStatus, PendingSchedule, SavedSchedule, ScheduleEntry
from sunday.services.recording import get_recording_store
from sunday.services.synthesizer import DraftEntry, ScheduleSynthesizer, TranscriptLine, get_schedule_synthesizer

logger = logging.getLogger("sunday")

# Allowed source states per action. Approved entries leave the pending set, so they have no row to act on.
TRANSITIONS = {
    "approve": {EntryStatus.PENDING},
    "reject": {EntryStatus.PENDING},
    "correct": {EntryStatus.REJECTED, EntryStatus.PENDING},
}


def entry_snapshot(entry: ScheduleEntry | DraftEntry) -> dict:
    """Plain-dict copy of an entry; `note` is omitted when absent."""
    data = {"start_time": entry.start_time, "end_time": entry.end_time, "description": entry.description}
    if entry.note:
        data["note"] = entry.note
    return data


class ScheduleManager:
    """Keeps the persisted pending schedule, its conversation and the archives consistent.

    Every mutation commits before returning. Language-model calls are serialised through
    one non-blocking lock: a second trigger while one is in flight is rejected, and a
    failed call leaves the pending schedule exactly as it was.
    """

    def __init__(self, synthesizer: ScheduleSynthesizer | None = None) -> None:
        self._synthesizer = synthesizer
        self._llm_lock = threading.Lock()

    @property
    def synthesizer(self) -> ScheduleSynthesizer:
        return self._synthesizer or get_schedule_synthesizer()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._llm_lock.acquire(blocking=False):
            raise SynthesisInProgress("A schedule request is already running")
        try:
            yield
        finally:
            self._llm_lock.release()

    @contextmanager
    def _writing(self, db: Session, action: str) -> Iterator[None]:
        try:
            yield
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not {action}: {e}") from e
        except Exception:
            db.rollback()
            raise

    # --- reads ---

    def get_pending(self, db: Session) -> PendingSchedule | None:
        return db.query(PendingSchedule).order_by(PendingSchedule.created_at.desc()).first()

    def get_entries(self, db: Session, pending: PendingSchedule) -> list[ScheduleEntry]:
        return (
            db.query(ScheduleEntry)
            .filter(ScheduleEntry.pending_schedule_id == pending.id)
            .order_by(ScheduleEntry.position)
            .all()
        )

    def get_entry(self, db: Session, entry_id: str) -> ScheduleEntry | None:
        return db.get(ScheduleEntry, entry_id)

    def list_approved(self, db: Session, day: date | None = None) -> list[ApprovedEntry]:
        query = db.query(ApprovedEntry)
        if day is not None:
            query = query.filter(ApprovedEntry.date == day.isoformat())
        return query.order_by(ApprovedEntry.approved_at, ApprovedEntry.id).all()

    def list_saved(self, db: Session) -> list[SavedSchedule]:
        return db.query(SavedSchedule).order_by(SavedSchedule.saved_at.desc()).all()

    def get_saved(self, db: Session, schedule_id: str) -> SavedSchedule | None:
        return db.get(SavedSchedule, schedule_id)

    # --- wholesale replacement ---

    def _clear_pending(self, db: Session) -> None:
        db.query(ScheduleEntry).delete()
        db.query(PendingSchedule).delete()

    def replace_all(self, db: Session, day: str, entries: list[DraftEntry], history: list[dict]) -> PendingSchedule:
        """Overwrite the pending set with a new batch. Earlier per-entry decisions are dropped."""
        pending = PendingSchedule(id=str(uuid.uuid4()), date=day, conversation_history=history, created_at=datetime.now())
        with self._writing(db, "save the pending schedule"):
            self._clear_pending(db)
            db.add(pending)
            db.flush()
            for position, draft in enumerate(entries):
                db.add(
                    ScheduleEntry(
                        id=draft.id,
                        pending_schedule_id=pending.id,
                        position=position,
                        start_time=draft.start_time,
                        end_time=draft.end_time,
                        description=draft.description,
                        note=draft.note,
                        status=draft.status,
                        rejection_reason=draft.rejection_reason,
                    )
                )
        db.refresh(pending)
        logger.info("Pending schedule %s for %s now holds %d entries", pending.id, day, len(entries))
        return pending

    def reset(self, db: Session) -> None:
        """Discard the pending schedule and its conversation."""
        with self._writing(db, "reset the pending schedule"):
            self._clear_pending(db)
        logger.info("Pending schedule reset")

    # --- synthesis ---

    def transcripts_for(self, db: Session, day: date) -> list[TranscriptLine]:
        recordings = get_recording_store().list_by_date(db, day)
        return [
            TranscriptLine(timestamp=r.created_at_local, text=r.transcription)
            for r in recordings
            if r.transcription_state == TranscriptionState.DONE and r.transcription
        ]

    def generate(self, db: Session, day: date) -> PendingSchedule:
        """Synthesise a day's transcripts into a fresh pending schedule."""
        lines = self.transcripts_for(db, day)
        if not lines:
            raise NoTranscripts(f"No transcribed recordings for {day.isoformat()}")
        with self._exclusive():
            result = self.synthesizer.synthesize(transcripts=lines)
            return self.replace_all(db, day.isoformat(), result.entries, result.history)

    def refine(self, db: Session, text: str) -> PendingSchedule:
        """Apply free-text feedback to the whole pending schedule."""
        pending = self.get_pending(db)
        if pending is None:
            raise InvalidTransition("There is no pending schedule to refine")
        with self._exclusive():
            result = self.synthesizer.synthesize(prior_history=list(pending.conversation_history), refinement_text=text)
            return self.replace_all(db, pending.date, result.entries, result.history)

    # --- per-entry workflow ---

    def _require(self, db: Session, entry_id: str, action: str) -> ScheduleEntry | None:
        entry = self.get_entry(db, entry_id)
        if entry is None:
            return None
        if entry.status not in TRANSITIONS[action]:
            raise InvalidTransition(f"Cannot {action} an entry that is {entry.status}")
        return entry

    def approve(self, db: Session, entry_id: str) -> ApprovedEntry | None:
        """Copy the entry into the approved archive and drop it from the pending set.

        Approving the last entry clears the pending session entirely.
        """
        entry = self._require(db, entry_id, "approve")
        if entry is None:
            return None
        pending = db.get(PendingSchedule, entry.pending_schedule_id)

        approved = ApprovedEntry(
            id=str(uuid.uuid4()),
            entry_id=entry.id,
            date=pending.date,
            start_time=entry.start_time,
            end_time=entry.end_time,
            description=entry.description,
            note=entry.note,
            approved_at=datetime.now(),
        )
        with self._writing(db, "approve the entry"):
            db.add(approved)
            db.delete(entry)
            db.flush()
            remaining = db.query(ScheduleEntry).filter(ScheduleEntry.pending_schedule_id == pending.id).count()
            if remaining == 0:
                db.delete(pending)
        db.refresh(approved)
        logger.info("Approved entry %s (%s - %s)", entry_id, approved.start_time, approved.end_time)
        if remaining == 0:
            logger.info("Last pending entry approved; pending schedule cleared")
        return approved

    def reject(self, db: Session, entry_id: str, reason: str) -> ScheduleEntry | None:
        entry = self._require(db, entry_id, "reject")
        if entry is None:
            return None
        with self._writing(db, "reject the entry"):
            entry.status = EntryStatus.REJECTED
            entry.rejection_reason = reason
        db.refresh(entry)
        logger.info("Rejected entry %s: %s", entry_id, reason)
        return entry

    def correct(self, db: Session, entry_id: str, text: str) -> ScheduleEntry | None:
        """Re-synthesise one entry from feedback; it re-enters review as pending."""
        entry = self._require(db, entry_id, "correct")
        if entry is None:
            return None
        pending = db.get(PendingSchedule, entry.pending_schedule_id)
        with self._exclusive():
            corrected = self.synthesizer.correct(entry, text, list(pending.conversation_history))
            with self._writing(db, "save the corrected entry"):
                entry.start_time = corrected.start_time
                entry.end_time = corrected.end_time
                entry.description = corrected.description
                entry.note = corrected.note
                entry.status = EntryStatus.PENDING
                entry.rejection_reason = None
        db.refresh(entry)
        logger.info("Corrected entry %s -> %s - %s %s", entry_id, entry.start_time, entry.end_time, entry.description)
        return entry

    # --- whole-day archive ---

    def confirm(self, db: Session) -> SavedSchedule | None:
        """Archive every non-rejected pending entry as one saved day and clear the pending session."""
        pending = self.get_pending(db)
        if pending is None:
            return None
        entries = [e for e in self.get_entries(db, pending) if e.status != EntryStatus.REJECTED]
        if not entries:
            raise InvalidTransition("Every pending entry is rejected; correct or reset before confirming")

        saved = SavedSchedule(
            id=str(uuid.uuid4()),
            date=pending.date,
            schedule_data=[entry_snapshot(e) for e in entries],
            conversation_history=list(pending.conversation_history),
            saved_at=datetime.now(),
        )
        with self._writing(db, "confirm the schedule"):
            db.add(saved)
            self._clear_pending(db)
        db.refresh(saved)
        logger.info("Confirmed schedule %s for %s with %d entries", saved.id, saved.date, len(entries))
        return saved


_schedule_manager: ScheduleManager | None = None


def get_schedule_manager() -> ScheduleManager:
    """Get singleton schedule manager instance."""
    global _schedule_manager
    if _schedule_manager is None:
        _schedule_manager = ScheduleManager()
    return _schedule_manager
