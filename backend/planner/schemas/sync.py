"""Schemas for calendar provider connection and sync polling."""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import Field, model_validator

from planner.models.timeblock import TimeBlockStatus
from planner.schemas.common import CamelModel
from planner.schemas.timeblock import TimeBlockResponse


class ConnectRequest(CamelModel):
    user_id: UUID
    scopes: list[str] = Field(..., min_length=1)
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


class ConnectResponse(CamelModel):
    provider: str
    user_id: UUID
    scopes: list[str]
    status: str
    integration_id: UUID


class DisconnectRequest(CamelModel):
    user_id: UUID


class DisconnectResponse(CamelModel):
    provider: str
    status: str


class SyncStatusResponse(CamelModel):
    status: str
    provider: str
    integration_id: Optional[UUID] = None
    last_synced_at: Optional[str] = None
    sync_mode: Optional[str] = None
    calendar_id: Optional[str] = None


class ExternalEventPayload(CamelModel):
    """One event pushed by the client from the external calendar."""

    id: str = Field(..., min_length=1)
    title: str
    start_at: datetime
    end_at: datetime
    status: TimeBlockStatus = TimeBlockStatus.TENTATIVE
    calendar_id: Optional[str] = None
    recurrence_rule: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_span(self):
        if self.end_at <= self.start_at:
            raise ValueError("endAt must be after startAt")
        return self


class PollRequest(CamelModel):
    user_id: UUID
    events: list[ExternalEventPayload] = Field(default_factory=list)
    cursor: Optional[str] = None
    calendar_id: Optional[str] = None


class PollResponse(CamelModel):
    provider: str
    synced: int
    last_sync_at: str
    timeblocks: list[TimeBlockResponse]
