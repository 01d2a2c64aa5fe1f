import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base, utcnow


class SyncMode(str, Enum):
    """How the integration learns about external changes."""
    POLLING = "polling"
    WEBHOOK = "webhook"


class CalendarIntegration(Base):
    """A user's connection to an external calendar provider."""

    __tablename__ = "planner_calendar_integrations"

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

    provider: Mapped[str] = mapped_column(String(20), nullable=False)  # 'google', 'ical'

    # OAuth tokens (obtained elsewhere; stored for pull sync)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sync_mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncMode.POLLING.value,
    )

    # Opaque key-value blob: lastSyncAt, cursor, scopes, ...
    sync_state: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
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
        UniqueConstraint("user_id", "provider", name="uq_planner_calendar_integration_user_provider"),
    )

    def __repr__(self) -> str:
        return f"<CalendarIntegration {self.provider} for user {self.user_id}>"
