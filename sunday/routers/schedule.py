"""Schedule synthesis and review endpoints."""

from datetime import date as date_type

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from sunday.database import get_db
from sunday.models.schedule import PendingSchedule
from sunday.rate_limit import limiter
from sunday.schemas.schedule import (
    ApprovedEntryResponse,
    CorrectRequest,
    GenerateRequest,
    PendingScheduleResponse,
    RefineRequest,
    RejectRequest,
    SavedScheduleResponse,
    ScheduleEntryResponse,
)
from sunday.services.schedule import ScheduleManager, get_schedule_manager

router = APIRouter(prefix="/api/v1/schedule", tags=["Schedule"])


def _pending_response(manager: ScheduleManager, db: Session, pending: PendingSchedule) -> PendingScheduleResponse:
    return PendingScheduleResponse(
        id=pending.id,
        date=pending.date,
        entries=[ScheduleEntryResponse.model_validate(e) for e in manager.get_entries(db, pending)],
        conversation_history=pending.conversation_history,
        created_at=pending.created_at,
    )


@router.get("/pending", response_model=PendingScheduleResponse)
def get_pending_schedule(db: Session = Depends(get_db)) -> PendingScheduleResponse:
    """The schedule currently under review."""
    manager = get_schedule_manager()
    pending = manager.get_pending(db)
    if not pending:
        raise HTTPException(status_code=404, detail="No pending schedule")
    return _pending_response(manager, db, pending)


@router.delete("/pending")
def reset_pending_schedule(db: Session = Depends(get_db)) -> dict:
    """Discard the pending schedule and its conversation."""
    get_schedule_manager().reset(db)
    return {"detail": "Pending schedule cleared"}


@router.post("/generate", response_model=PendingScheduleResponse)
@limiter.limit("10/minute")
def generate_schedule(
    request: Request,
    payload: GenerateRequest,
    db: Session = Depends(get_db),
) -> PendingScheduleResponse:
    """Build a schedule from one day's transcribed recordings (today by default)."""
    manager = get_schedule_manager()
    pending = manager.generate(db, payload.date or date_type.today())
    return _pending_response(manager, db, pending)


@router.post("/refine", response_model=PendingScheduleResponse)
@limiter.limit("10/minute")
def refine_schedule(
    request: Request,
    payload: RefineRequest,
    db: Session = Depends(get_db),
) -> PendingScheduleResponse:
    """Apply free-text feedback to the whole pending schedule."""
    manager = get_schedule_manager()
    pending = manager.refine(db, payload.text)
    return _pending_response(manager, db, pending)


@router.post("/entries/{entry_id}/approve", response_model=ApprovedEntryResponse)
def approve_entry(entry_id: str, db: Session = Depends(get_db)) -> ApprovedEntryResponse:
    approved = get_schedule_manager().approve(db, entry_id)
    if not approved:
        raise HTTPException(status_code=404, detail="Schedule entry not found")
    return ApprovedEntryResponse.model_validate(approved)


@router.post("/entries/{entry_id}/reject", response_model=ScheduleEntryResponse)
def reject_entry(entry_id: str, payload: RejectRequest, db: Session = Depends(get_db)) -> ScheduleEntryResponse:
    entry = get_schedule_manager().reject(db, entry_id, payload.reason)
    if not entry:
        raise HTTPException(status_code=404, detail="Schedule entry not found")
    return ScheduleEntryResponse.model_validate(entry)


@router.post("/entries/{entry_id}/correct", response_model=ScheduleEntryResponse)
@limiter.limit("10/minute")
def correct_entry(
    request: Request,
    entry_id: str,
    payload: CorrectRequest,
    db: Session = Depends(get_db),
) -> ScheduleEntryResponse:
    """Re-synthesise one entry from the user's correction. It returns to review as pending."""
    entry = get_schedule_manager().correct(db, entry_id, payload.text)
    if not entry:
        raise HTTPException(status_code=404, detail="Schedule entry not found")
    return ScheduleEntryResponse.model_validate(entry)


@router.post("/confirm", response_model=SavedScheduleResponse)
def confirm_schedule(db: Session = Depends(get_db)) -> SavedScheduleResponse:
    """Archive the pending day (rejected entries excluded) and clear the review session."""
    saved = get_schedule_manager().confirm(db)
    if not saved:
        raise HTTPException(status_code=404, detail="No pending schedule")
    return SavedScheduleResponse.model_validate(saved)


@router.get("/approved", response_model=list[ApprovedEntryResponse])
def list_approved_entries(
    date: date_type | None = None,
    db: Session = Depends(get_db),
) -> list[ApprovedEntryResponse]:
    """Individually approved entries, oldest approval first."""
    return [ApprovedEntryResponse.model_validate(a) for a in get_schedule_manager().list_approved(db, date)]
