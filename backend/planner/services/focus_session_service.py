"""Service for focus sessions and the calendar time they reserve."""

import logging
from uuid import UUID
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import NotFoundError, ValidationError
from planner.models.focus_session import FocusSession, FocusSessionStatus
from planner.models.task import Task
from planner.models.timeblock import TimeBlock, TimeBlockStatus, CalendarProvider
from planner.services.intervals import as_utc
from planner.services.timeblock_service import TimeBlockService

logger = logging.getLogger(__name__)

FOCUS_BLOCK_NOTE = "Focus session block"


class FocusSessionService:
    """
    Start, complete, cancel and list focus sessions.

    A session started with a channel reserves its span as a tentative local
    time block, booked through TimeBlockService so it gets the same conflict
    check as any other booking.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.timeblocks = TimeBlockService(db)

    async def start_session(
        self,
        user_id: UUID,
        task_id: UUID,
        planned_minutes: int,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        goal: Optional[str] = None,
        channel_id: Optional[UUID] = None,
    ) -> FocusSession:
        """
        Start a session on a task. The span defaults to now + planned_minutes.

        Raises:
            ValidationError: if the span is empty or inverted.
            NotFoundError: if the task does not belong to the user.
            ConflictError: if a channel is given and the span is already booked.
        """
        start = as_utc(start_at) if start_at else datetime.now(timezone.utc)
        end = as_utc(end_at) if end_at else start + timedelta(minutes=planned_minutes)
        if end <= start:
            raise ValidationError("endAt must be after startAt")

        task = await self.db.get(Task, task_id)
        if not task or task.user_id != user_id:
            raise NotFoundError(f"Task {task_id} not found")

        block = None
        if channel_id is not None:
            block = await self.timeblocks.create_timeblock(
                user_id=user_id,
                start_at=start,
                end_at=end,
                task_id=task_id,
                channel_id=channel_id,
                status=TimeBlockStatus.TENTATIVE.value,
                provider=CalendarProvider.LOCAL.value,
                title=task.title,
                notes=FOCUS_BLOCK_NOTE,
            )

        session = FocusSession(
            user_id=user_id,
            task_id=task_id,
            time_block_id=block.id if block else None,
            start_at=start,
            end_at=end,
            planned_minutes=planned_minutes,
            goal=goal,
        )
        self.db.add(session)
        await self.db.commit()
        await self.db.refresh(session)

        logger.info(f"Started focus session {session.id} on task {task_id} for user {user_id}")
        return session

    async def get_session(self, session_id: UUID) -> FocusSession:
        session = await self.db.get(FocusSession, session_id)
        if not session:
            raise NotFoundError(f"Focus session {session_id} not found")
        return session

    async def list_sessions(
        self,
        user_id: UUID,
        status: Optional[str] = None,
    ) -> list[FocusSession]:
        """List a user's sessions, most recent start first."""
        conditions = [FocusSession.user_id == user_id]
        if status:
            conditions.append(FocusSession.status == status)

        result = await self.db.execute(
            select(FocusSession)
            .where(and_(*conditions))
            .order_by(FocusSession.start_at.desc())
        )
        return list(result.scalars().all())

    async def complete_session(
        self,
        session_id: UUID,
        actual_minutes: int,
        summary: Optional[str] = None,
        interruptions: int = 0,
    ) -> FocusSession:
        """Close a session, log its minutes on the task and mark its block completed."""
        session = await self.get_session(session_id)
        if session.status == FocusSessionStatus.COMPLETED.value:
            raise ValidationError("Session already completed")
        if session.status == FocusSessionStatus.CANCELLED.value:
            raise ValidationError("Session was cancelled")

        now = datetime.now(timezone.utc)
        session.status = FocusSessionStatus.COMPLETED.value
        session.actual_minutes = actual_minutes
        session.summary = summary
        session.interruptions = interruptions
        if now > as_utc(session.start_at):
            session.end_at = now

        task = await self.db.get(Task, session.task_id)
        if task:
            task.actual_minutes = (task.actual_minutes or 0) + actual_minutes

        await self._set_block_status(session, TimeBlockStatus.COMPLETED.value)
        await self.db.commit()
        await self.db.refresh(session)

        logger.info(f"Completed focus session {session.id}: {actual_minutes} min, {interruptions} interruptions")
        return session

    async def cancel_session(self, session_id: UUID) -> FocusSession:
        """Cancel an active session and release the time it reserved."""
        session = await self.get_session(session_id)
        if session.status != FocusSessionStatus.ACTIVE.value:
            raise ValidationError(f"Cannot cancel a {session.status} session")

        session.status = FocusSessionStatus.CANCELLED.value
        await self._set_block_status(session, TimeBlockStatus.CANCELLED.value)
        await self.db.commit()
        await self.db.refresh(session)

        logger.info(f"Cancelled focus session {session.id}")
        return session

    async def _set_block_status(self, session: FocusSession, status: str) -> None:
        # Span is unchanged, so no conflict re-check is needed
        if session.time_block_id is None:
            return
        block = await self.db.get(TimeBlock, session.time_block_id)
        if block and block.status != TimeBlockStatus.CANCELLED.value:
            block.status = status
