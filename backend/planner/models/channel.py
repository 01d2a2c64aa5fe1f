import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base, utcnow


class ChannelVisibility(str, Enum):
    """Who can see a channel's blocks."""
    PRIVATE = "private"
    SHARED = "shared"


class Channel(Base):
    """A named grouping of time blocks, optionally bound to an external calendar."""

    __tablename__ = "planner_channels"

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

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    visibility: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ChannelVisibility.PRIVATE.value,
    )

    # Synced events from this external calendar land in this channel
    target_calendar_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)  # #rgb or #rrggbb

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
        Index("idx_planner_channels_user_calendar", "user_id", "target_calendar_id"),
    )

    def __repr__(self) -> str:
        return f"<Channel {self.name} for user {self.user_id}>"
