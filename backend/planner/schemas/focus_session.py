from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import Field, field_validator, model_validator

from planner.schemas.common import CamelModel
from planner.services.intervals import as_utc


class StartFocusSessionRequest(CamelModel):
    """Start a focus session. With channelId the span is also booked as a time block."""

    user_id: UUID
    task_id: UUID
    planned_minutes: int = Field(..., gt=0, le=480)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    goal: Optional[str] = None
    channel_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_span(self):
        if self.start_at and self.end_at and self.end_at <= self.start_at:
            raise ValueError("endAt must be after startAt")
        return self


class CompleteFocusSessionRequest(CamelModel):
    actual_minutes: int = Field(..., gt=0)
    summary: Optional[str] = None
    interruptions: int = Field(0, ge=0)


class FocusSessionResponse(CamelModel):
    id: UUID
    user_id: UUID
    task_id: UUID
    time_block_id: Optional[UUID] = None
    start_at: datetime
    end_at: datetime
    planned_minutes: int
    actual_minutes: Optional[int] = None
    status: str
    goal: Optional[str] = None
    summary: Optional[str] = None
    interruptions: int = 0
    created_at: Optional[datetime] = None

    @field_validator("start_at", "end_at", "created_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v
