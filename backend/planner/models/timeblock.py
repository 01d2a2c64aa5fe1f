"""Time block model: a scheduled [start_at, end_at) interval on a user's calendar."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Text, Index, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base, utcnow


class TimeBlockStatus(str, Enum):
    """Lifecycle of a time block. Cancelled blocks free their interval."""
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CalendarProvider(str, Enum):
    """Where a time block came from."""
    GOOGLE = "google"
    ICAL = "ical"
    LOCAL = "local"


class TimeBlock(Base):
    """A locally owned or externally mirrored calendar interval."""

    __tablename__ = "planner_time_blocks"

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
    task_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("planner_tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    channel_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("planner_channels.id", ondelete="SET NULL"),
        nullable=True,
    )

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    start_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    end_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TimeBlockStatus.TENTATIVE.value,
    )
    provider: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CalendarProvider.LOCAL.value,
    )

    # Reconciliation key for externally sourced blocks
    calendar_event_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recurrence_rule: Mapped[str | None] = mapped_column(String(500), nullable=True)

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
        UniqueConstraint(
            "user_id", "calendar_event_id",
            name="uq_planner_time_blocks_user_calendar_event",
        ),
        CheckConstraint("end_at > start_at", name="ck_planner_time_blocks_positive_length"),
        Index("idx_planner_time_blocks_user_start", "user_id", "start_at"),
        Index("idx_planner_time_blocks_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<TimeBlock {self.start_at}-{self.end_at} for user {self.user_id}>"
