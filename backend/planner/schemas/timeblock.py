"""
Schemas for the time block API.

Request models validate shape and ranges at the boundary so services receive
already-checked values.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import Field, field_validator, model_validator

from planner.models.timeblock import TimeBlockStatus, CalendarProvider
from planner.schemas.common import CamelModel
from planner.services.intervals import as_utc


class CreateTimeBlockRequest(CamelModel):
    """Request to book a time block."""

    user_id: UUID
    start_at: datetime
    end_at: datetime
    task_id: Optional[UUID] = None
    channel_id: Optional[UUID] = None
    status: TimeBlockStatus = TimeBlockStatus.TENTATIVE
    provider: CalendarProvider = CalendarProvider.LOCAL
    title: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    recurrence_rule: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_span(self):
        if self.end_at <= self.start_at:
            raise ValueError("endAt must be after startAt")
        return self


class UpdateTimeBlockRequest(CamelModel):
    """
    Partial update. Omitted fields are left alone; explicit null clears
    nullable fields (taskId, channelId, title, location, notes, recurrenceRule).
    """

    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    task_id: Optional[UUID] = None
    channel_id: Optional[UUID] = None
    status: Optional[TimeBlockStatus] = None
    provider: Optional[CalendarProvider] = None
    title: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    recurrence_rule: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_changes(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        if self.start_at and self.end_at and self.end_at <= self.start_at:
            raise ValueError("endAt must be after startAt")
        return self


class SuggestTimeBlockRequest(CamelModel):
    """Request to auto-schedule the first open slot."""

    user_id: UUID
    task_id: Optional[UUID] = None
    channel_id: Optional[UUID] = None
    title: Optional[str] = Field(None, max_length=500)
    duration_minutes: Optional[int] = Field(None, ge=15, le=480)
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    preferred_start_hour: Optional[int] = Field(None, ge=0, le=23)
    preferred_end_hour: Optional[int] = Field(None, ge=1, le=23)
    timezone: Optional[str] = Field(None, description="IANA timezone; defaults to the user's")

    @model_validator(mode="after")
    def check_window(self):
        if (
            self.preferred_start_hour is not None
            and self.preferred_end_hour is not None
            and self.preferred_end_hour <= self.preferred_start_hour
        ):
            raise ValueError("preferredEndHour must be after preferredStartHour")
        if self.window_start and self.window_end and self.window_end <= self.window_start:
            raise ValueError("windowEnd must be after windowStart")
        return self


class TimeBlockResponse(CamelModel):
    """A persisted time block."""

    id: UUID
    user_id: UUID
    task_id: Optional[UUID] = None
    channel_id: Optional[UUID] = None
    title: Optional[str] = None
    start_at: datetime
    end_at: datetime
    status: str
    provider: str
    location: Optional[str] = None
    notes: Optional[str] = None
    calendar_event_id: Optional[str] = None
    recurrence_rule: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_at", "end_at", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v
