"""Focus session model: a timed stretch of work on one task."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Text, Index, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base, utcnow


class FocusSessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FocusSession(Base):
    """Planned and actual minutes spent on a task, optionally reserved as a time block."""

    __tablename__ = "planner_focus_sessions"

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
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("planner_tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Block reserved on the calendar when the session was started in a channel
    time_block_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("planner_time_blocks.id", ondelete="SET NULL"),
        nullable=True,
    )

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    planned_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=FocusSessionStatus.ACTIVE.value,
    )
    goal: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    interruptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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
        Index("idx_planner_focus_sessions_user_start", "user_id", "start_at"),
    )

    def __repr__(self) -> str:
        return f"<FocusSession {self.status} on task {self.task_id}>"
