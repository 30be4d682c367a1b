"""Pydantic schemas for schedule synthesis, review and archives."""

from datetime import date as date_type
from datetime import datetime

from pydantic import BaseModel, Field


class ScheduleEntryResponse(BaseModel):
    id: str
    start_time: str
    end_time: str
    description: str
    note: str | None = None
    status: str
    rejection_reason: str | None = None

    model_config = {"from_attributes": True}


class PendingScheduleResponse(BaseModel):
    id: str
    date: str
    entries: list[ScheduleEntryResponse]
    conversation_history: list[dict]
    created_at: datetime


class ApprovedEntryResponse(BaseModel):
    id: str
    entry_id: str
    date: str
    start_time: str
    end_time: str
    description: str
    note: str | None = None
    approved_at: datetime

    model_config = {"from_attributes": True}


class SavedScheduleResponse(BaseModel):
    id: str
    date: str
    schedule_data: list[dict]
    conversation_history: list[dict]
    saved_at: datetime

    model_config = {"from_attributes": True}


class GenerateRequest(BaseModel):
    date: date_type | None = None


class RefineRequest(BaseModel):
    text: str = Field(min_length=1)


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class CorrectRequest(BaseModel):
    text: str = Field(min_length=1)


class CategorySummary(BaseModel):
    category: str
    minutes: int
    duration: str
    percentage: float
    activities: list[str]


class InsightsResponse(BaseModel):
    schedule_id: str
    date: str
    total_minutes: int
    categories: list[CategorySummary]
