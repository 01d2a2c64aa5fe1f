"""Service for booking, editing and auto-scheduling time blocks."""

import logging
from dataclasses import dataclass, fields
from uuid import UUID
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planner.config import get_settings
from planner.errors import ConflictError, IntegrityRace, NotFoundError, ValidationError
from planner.models.channel import Channel
from planner.models.task import Task
from planner.models.timeblock import TimeBlock, TimeBlockStatus, CalendarProvider
from planner.models.user import User
from planner.services.conflict_service import ConflictChecker
from planner.services.intervals import Interval, as_utc
from planner.services.slot_finder import find_first_open_slot

logger = logging.getLogger(__name__)
settings = get_settings()

# Name of the PostgreSQL exclusion constraint created by the initial migration
OVERLAP_CONSTRAINT = "excl_planner_time_blocks_no_overlap"


class _Unset:
    """Marker for an update field the caller did not send."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class TimeBlockChanges:
    """
    Partial update for a time block.

    Each field is UNSET (leave as is), None (clear it) or a new value.
    start_at, end_at, status and provider cannot be cleared.
    """

    start_at: Any = UNSET
    end_at: Any = UNSET
    task_id: Any = UNSET
    channel_id: Any = UNSET
    status: Any = UNSET
    provider: Any = UNSET
    title: Any = UNSET
    location: Any = UNSET
    notes: Any = UNSET
    recurrence_rule: Any = UNSET

    def provided(self) -> dict[str, Any]:
        """Fields the caller actually sent, including explicit nulls."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


REQUIRED_FIELDS = ("start_at", "end_at", "status", "provider")


class TimeBlockService:
    """Create, update, suggest and query time blocks with overlap protection."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conflicts = ConflictChecker(db)

    # ==================== QUERIES ====================

    async def get_timeblock(self, block_id: UUID) -> TimeBlock:
        """Get a time block by ID or raise NotFoundError."""
        result = await self.db.execute(select(TimeBlock).where(TimeBlock.id == block_id))
        block = result.scalar_one_or_none()
        if not block:
            raise NotFoundError(f"Time block {block_id} not found")
        return block

    async def list_timeblocks(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        task_id: Optional[UUID] = None,
        channel_id: Optional[UUID] = None,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
    ) -> list[TimeBlock]:
        """List a user's time blocks ordered by start time."""
        conditions = [TimeBlock.user_id == user_id]
        if status:
            conditions.append(TimeBlock.status == status)
        if task_id:
            conditions.append(TimeBlock.task_id == task_id)
        if channel_id:
            conditions.append(TimeBlock.channel_id == channel_id)
        if range_start:
            conditions.append(TimeBlock.end_at > as_utc(range_start))
        if range_end:
            conditions.append(TimeBlock.start_at < as_utc(range_end))

        result = await self.db.execute(
            select(TimeBlock)
            .where(and_(*conditions))
            .order_by(TimeBlock.start_at.asc())
        )
        return list(result.scalars().all())

    async def busy_intervals(
        self,
        user_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Interval]:
        """Active intervals touching the window, sorted ascending by start."""
        result = await self.db.execute(
            select(TimeBlock)
            .where(
                and_(
                    TimeBlock.user_id == user_id,
                    TimeBlock.status != TimeBlockStatus.CANCELLED.value,
                    TimeBlock.start_at < as_utc(window_end),
                    TimeBlock.end_at > as_utc(window_start),
                )
            )
            .order_by(TimeBlock.start_at.asc())
        )
        intervals = [Interval.of_block(block) for block in result.scalars().all()]
        intervals.sort(key=lambda interval: interval.start)
        return intervals

    # ==================== WRITES ====================

    async def create_timeblock(
        self,
        user_id: UUID,
        start_at: datetime,
        end_at: datetime,
        task_id: Optional[UUID] = None,
        channel_id: Optional[UUID] = None,
        status: str = TimeBlockStatus.TENTATIVE.value,
        provider: str = CalendarProvider.LOCAL.value,
        title: Optional[str] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        recurrence_rule: Optional[str] = None,
    ) -> TimeBlock:
        """Book a new block after checking it against the user's active blocks."""
        start_at, end_at = self._validated_span(start_at, end_at)

        await self._lock_user(user_id)
        if task_id is not None:
            await self._require_task(task_id, user_id)
        if channel_id is not None:
            await self._require_channel(channel_id, user_id)

        if status != TimeBlockStatus.CANCELLED.value:
            await self.conflicts.assert_no_conflict(user_id, start_at, end_at)

        block = TimeBlock(
            user_id=user_id,
            start_at=start_at,
            end_at=end_at,
            task_id=task_id,
            channel_id=channel_id,
            status=status,
            provider=provider,
            title=title,
            location=location,
            notes=notes,
            recurrence_rule=recurrence_rule,
        )
        self.db.add(block)
        await self._commit()
        await self.db.refresh(block)

        logger.info(f"Created time block {block.id} ({start_at.isoformat()}-{end_at.isoformat()}) for user {user_id}")
        return block

    async def update_timeblock(self, block_id: UUID, changes: TimeBlockChanges) -> TimeBlock:
        """
        Apply a partial update.

        Effective start/end fall back to the stored values, and the result is
        re-checked for conflicts excluding the block itself.
        """
        provided = changes.provided()
        for name in REQUIRED_FIELDS:
            if name in provided and provided[name] is None:
                raise ValidationError(f"{name} cannot be null")

        block = await self.get_timeblock(block_id)
        await self._lock_user(block.user_id)

        start_at, end_at = self._validated_span(
            provided.get("start_at", block.start_at),
            provided.get("end_at", block.end_at),
        )
        status = provided.get("status", block.status)

        if provided.get("task_id") is not None:
            await self._require_task(provided["task_id"], block.user_id)
        if provided.get("channel_id") is not None:
            await self._require_channel(provided["channel_id"], block.user_id)

        if status != TimeBlockStatus.CANCELLED.value:
            await self.conflicts.assert_no_conflict(
                block.user_id, start_at, end_at, exclude_id=block.id
            )

        for key, value in provided.items():
            setattr(block, key, value)
        block.start_at = start_at
        block.end_at = end_at

        await self._commit()
        await self.db.refresh(block)

        logger.info(f"Updated time block {block.id} for user {block.user_id}: {sorted(provided)}")
        return block

    async def delete_timeblock(self, block_id: UUID) -> None:
        """Delete a time block. Only explicit user action removes blocks."""
        block = await self.get_timeblock(block_id)
        await self.db.delete(block)
        await self.db.commit()
        logger.info(f"Deleted time block {block_id} for user {block.user_id}")

    async def suggest_timeblock(
        self,
        user_id: UUID,
        duration_minutes: Optional[int] = None,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        preferred_start_hour: Optional[int] = None,
        preferred_end_hour: Optional[int] = None,
        task_id: Optional[UUID] = None,
        channel_id: Optional[UUID] = None,
        title: Optional[str] = None,
        timezone_name: Optional[str] = None,
    ) -> TimeBlock:
        """
        Find the first open slot in the user's working hours and book it as tentative.

        Raises:
            ConflictError: window_exhausted when nothing fits, or a colliding
                block if one appeared between the scan and the write.
        """
        duration_minutes = duration_minutes or settings.default_slot_duration_minutes
        start_hour = (
            preferred_start_hour if preferred_start_hour is not None
            else settings.default_preferred_start_hour
        )
        end_hour = (
            preferred_end_hour if preferred_end_hour is not None
            else settings.default_preferred_end_hour
        )
        if end_hour <= start_hour:
            raise ValidationError("preferredEndHour must be after preferredStartHour")

        search_start = as_utc(window_start) if window_start else datetime.now(timezone.utc)
        search_end = (
            as_utc(window_end) if window_end
            else search_start + timedelta(days=settings.default_search_window_days)
        )
        if search_end <= search_start:
            raise ValidationError("windowEnd must be after windowStart")

        user = await self._lock_user(user_id)
        task = await self._require_task(task_id, user_id) if task_id is not None else None
        if channel_id is not None:
            await self._require_channel(channel_id, user_id)

        tz = self._resolve_timezone(timezone_name or user.timezone)
        busy = await self.busy_intervals(user_id, search_start, search_end)

        slot = find_first_open_slot(
            busy,
            search_start,
            search_end,
            start_hour,
            end_hour,
            duration_minutes,
            tz=tz,
        )
        if slot is None:
            raise ConflictError(
                "No available time within the selected window",
                window_exhausted=True,
                details={
                    "windowStart": search_start.isoformat(),
                    "windowEnd": search_end.isoformat(),
                    "durationMinutes": duration_minutes,
                },
            )

        # Guards against bookings written between the scan and this insert
        await self.conflicts.assert_no_conflict(user_id, slot.start, slot.end)

        block = TimeBlock(
            user_id=user_id,
            start_at=slot.start,
            end_at=slot.end,
            task_id=task_id,
            channel_id=channel_id,
            status=TimeBlockStatus.TENTATIVE.value,
            provider=CalendarProvider.LOCAL.value,
            title=title or (task.title if task else "Suggested block"),
        )
        self.db.add(block)
        await self._commit()
        await self.db.refresh(block)

        logger.info(f"Auto-scheduled block {block.id} at {slot.start.isoformat()} for user {user_id}")
        return block

    # ==================== HELPERS ====================

    @staticmethod
    def _validated_span(start_at: datetime, end_at: datetime) -> tuple[datetime, datetime]:
        start_at, end_at = as_utc(start_at), as_utc(end_at)
        if end_at <= start_at:
            raise ValidationError("endAt must be after startAt")
        return start_at, end_at

    @staticmethod
    def _resolve_timezone(name: Optional[str]) -> ZoneInfo:
        try:
            return ZoneInfo(name or settings.default_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown timezone '{name}'")

    async def _lock_user(self, user_id: UUID) -> User:
        """
        Load the owning user with a row lock.

        Holding the lock until commit serializes check-then-write sequences
        for the same user on PostgreSQL.
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def _require_task(self, task_id: UUID, user_id: UUID) -> Task:
        result = await self.db.execute(
            select(Task).where(and_(Task.id == task_id, Task.user_id == user_id))
        )
        task = result.scalar_one_or_none()
        if not task:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    async def _require_channel(self, channel_id: UUID, user_id: UUID) -> Channel:
        result = await self.db.execute(
            select(Channel).where(and_(Channel.id == channel_id, Channel.user_id == user_id))
        )
        channel = result.scalar_one_or_none()
        if not channel:
            raise NotFoundError(f"Channel {channel_id} not found")
        return channel

    async def _commit(self) -> None:
        """Commit, translating an exclusion-constraint violation into IntegrityRace."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                logger.warning(f"Concurrent booking rejected by store: {e.orig}")
                raise IntegrityRace(
                    "Time block was booked concurrently by another request; retry",
                ) from e
            raise
