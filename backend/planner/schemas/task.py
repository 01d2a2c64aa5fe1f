from datetime import datetime
from typing import Literal, Optional
from uuid import UUID
from pydantic import Field, model_validator

from planner.models.task import TaskStatus
from planner.schemas.common import CamelModel


class CreateTaskRequest(CamelModel):
    """Request to create a task. priorityScore falls back to the importance/urgency score."""

    user_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    status: TaskStatus = TaskStatus.TODO
    priority_level: Optional[int] = Field(None, ge=1, le=5)
    priority_score: Optional[float] = None
    importance: Optional[int] = Field(None, ge=1, le=5)
    urgency: Optional[int] = Field(None, ge=1, le=5)
    due_at: Optional[datetime] = None
    channel_id: Optional[UUID] = None
    notes: Optional[str] = None


class UpdateTaskRequest(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    status: Optional[TaskStatus] = None
    priority_level: Optional[int] = Field(None, ge=1, le=5)
    priority_score: Optional[float] = None
    importance: Optional[int] = Field(None, ge=1, le=5)
    urgency: Optional[int] = Field(None, ge=1, le=5)
    due_at: Optional[datetime] = None
    channel_id: Optional[UUID] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_changes(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class PriorityUpdateRequest(CamelModel):
    priority_level: Optional[int] = Field(None, ge=1, le=5)
    priority_score: Optional[float] = None
    importance: Optional[int] = Field(None, ge=1, le=5)
    urgency: Optional[int] = Field(None, ge=1, le=5)

    @model_validator(mode="after")
    def check_changes(self):
        if not self.model_fields_set:
            raise ValueError("priorityLevel, priorityScore or importance/urgency is required")
        return self


TaskSort = Literal["priority", "due", "created"]
SortDirection = Literal["asc", "desc"]
ScheduledFilter = Literal["scheduled", "unscheduled"]


class TaskResponse(CamelModel):
    id: UUID
    user_id: UUID
    title: str
    status: str
    priority_level: int
    priority_score: Optional[float] = None
    importance: Optional[int] = None
    urgency: Optional[int] = None
    actual_minutes: int = 0
    due_at: Optional[datetime] = None
    channel_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
