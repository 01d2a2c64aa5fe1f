"""Planner task model. Tasks are what time blocks get booked for."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Text, Index, Float, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base, utcnow


class TaskStatus(str, Enum):
    """Workflow state of a task."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


DEFAULT_PRIORITY_LEVEL = 3


class Task(Base):
    """A unit of work that can be placed on the calendar."""

    __tablename__ = "planner_tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("planner_users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("planner_channels.id", ondelete="SET NULL"),
        nullable=True,
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TaskStatus.TODO.value,
    )

    # Priority (1-5, 1 being highest)
    priority_level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_PRIORITY_LEVEL,
    )
    importance: Mapped[int | None] = mapped_column(Integer, nullable=True)
    urgency: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Minutes logged by completed focus sessions
    actual_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    due_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("idx_planner_tasks_user_status", "user_id", "status"),
        Index("idx_planner_tasks_priority", "user_id", "priority_score"),
    )

    def __repr__(self) -> str:
        return f"<Task {self.title[:30]} for user {self.user_id}>"
