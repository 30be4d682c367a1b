"""Saved (confirmed) schedule archive and calendar export."""

from datetime import date as date_type

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from sunday.database import get_db
from sunday.schemas.schedule import SavedScheduleResponse
from sunday.services.calendar_export import build_calendar
from sunday.services.schedule import get_schedule_manager

router = APIRouter(prefix="/api/v1/schedules/saved", tags=["Saved Schedules"])


@router.get("/", response_model=list[SavedScheduleResponse])
def list_saved_schedules(db: Session = Depends(get_db)) -> list[SavedScheduleResponse]:
    """Confirmed days, newest first."""
    return [SavedScheduleResponse.model_validate(s) for s in get_schedule_manager().list_saved(db)]


@router.get("/{schedule_id}", response_model=SavedScheduleResponse)
def get_saved_schedule(schedule_id: str, db: Session = Depends(get_db)) -> SavedScheduleResponse:
    saved = get_schedule_manager().get_saved(db, schedule_id)
    if not saved:
        raise HTTPException(status_code=404, detail="Saved schedule not found")
    return SavedScheduleResponse.model_validate(saved)


@router.get("/{schedule_id}/calendar.ics")
def export_saved_schedule(schedule_id: str, db: Session = Depends(get_db)) -> Response:
    """Download a confirmed day as an iCalendar file."""
    saved = get_schedule_manager().get_saved(db, schedule_id)
    if not saved:
        raise HTTPException(status_code=404, detail="Saved schedule not found")

    body = build_calendar(saved.id, date_type.fromisoformat(saved.date), saved.schedule_data)
    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="schedule-{saved.date}.ics"'},
    )
