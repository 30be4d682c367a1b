"""Insights endpoints: time per activity category for a confirmed day."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from sunday.database import get_db
from sunday.models.schedule import SavedSchedule
from sunday.schemas.schedule import CategorySummary, InsightsResponse
from sunday.services.insights import summarize_schedule
from sunday.services.schedule import get_schedule_manager

router = APIRouter(prefix="/api/v1/insights", tags=["Insights"])


def _insights_for(saved: SavedSchedule) -> InsightsResponse:
    total_minutes, categories = summarize_schedule(saved.schedule_data)
    return InsightsResponse(
        schedule_id=saved.id,
        date=saved.date,
        total_minutes=total_minutes,
        categories=[CategorySummary(**c) for c in categories],
    )


@router.get("/latest", response_model=InsightsResponse)
def latest_insights(db: Session = Depends(get_db)) -> InsightsResponse:
    """Insights for the most recently confirmed day."""
    saved = get_schedule_manager().list_saved(db)
    if not saved:
        raise HTTPException(status_code=404, detail="No saved schedules yet")
    return _insights_for(saved[0])


@router.get("/{schedule_id}", response_model=InsightsResponse)
def schedule_insights(schedule_id: str, db: Session = Depends(get_db)) -> InsightsResponse:
    saved = get_schedule_manager().get_saved(db, schedule_id)
    if not saved:
        raise HTTPException(status_code=404, detail="Saved schedule not found")
    return _insights_for(saved)
