"""Conflict checking for a user's active time blocks."""

import logging
from uuid import UUID
from datetime import datetime
from typing import Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import ConflictError
from planner.models.timeblock import TimeBlock, TimeBlockStatus
from planner.services.intervals import Interval, as_utc, overlaps

logger = logging.getLogger(__name__)


class ConflictChecker:
    """
    Read-then-decide overlap check run before every time block write.

    Every status except cancelled counts as busy. The check itself takes no
    locks; TimeBlockService serializes writes per user around it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_conflict(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[TimeBlock]:
        """Return the earliest active block overlapping [start, end), if any."""
        candidate = Interval(as_utc(start), as_utc(end))

        conditions = [
            TimeBlock.user_id == user_id,
            TimeBlock.status != TimeBlockStatus.CANCELLED.value,
            TimeBlock.start_at < candidate.end,
            TimeBlock.end_at > candidate.start,
        ]
        if exclude_id is not None:
            conditions.append(TimeBlock.id != exclude_id)

        result = await self.db.execute(
            select(TimeBlock)
            .where(and_(*conditions))
            .order_by(TimeBlock.start_at.asc())
        )

        for block in result.scalars().all():
            if overlaps(candidate, Interval.of_block(block)):
                return block
        return None

    async def assert_no_conflict(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        """Raise ConflictError referencing a colliding block if [start, end) is taken."""
        conflict = await self.find_conflict(user_id, start, end, exclude_id)
        if conflict is not None:
            logger.info(
                f"Rejected interval {start.isoformat()}-{end.isoformat()} for user {user_id}: "
                f"overlaps block {conflict.id}"
            )
            raise ConflictError(
                "Time block conflicts with another block",
                conflict=conflict,
            )
