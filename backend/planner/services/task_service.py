"""Service for planner tasks and their priority scores."""

import logging
from uuid import UUID
from datetime import datetime
from typing import Optional
from sqlalchemy import select, and_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import NotFoundError
from planner.models.task import Task, TaskStatus, DEFAULT_PRIORITY_LEVEL
from planner.models.timeblock import TimeBlock
from planner.models.user import User
from planner.services.priority import compute_priority_score

logger = logging.getLogger(__name__)


def resolve_priority_score(
    priority_score: Optional[float],
    importance: Optional[int],
    urgency: Optional[int],
) -> Optional[float]:
    """An explicit score wins; otherwise derive one from importance and urgency."""
    if priority_score is not None:
        return priority_score
    return compute_priority_score(importance, urgency)


class TaskService:
    """Task CRUD plus priority ordering used to decide what to schedule first."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_task(
        self,
        user_id: UUID,
        title: str,
        status: str = TaskStatus.TODO.value,
        priority_level: Optional[int] = None,
        priority_score: Optional[float] = None,
        importance: Optional[int] = None,
        urgency: Optional[int] = None,
        due_at: Optional[datetime] = None,
        channel_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> Task:
        """Create a new task."""
        if not await self.db.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        task = Task(
            user_id=user_id,
            title=title,
            status=status,
            priority_level=priority_level or DEFAULT_PRIORITY_LEVEL,
            importance=importance,
            urgency=urgency,
            priority_score=resolve_priority_score(priority_score, importance, urgency),
            due_at=due_at,
            channel_id=channel_id,
            notes=notes,
        )
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)

        logger.info(f"Created task '{title[:30]}' for user {user_id} (score={task.priority_score})")
        return task

    async def get_task(self, task_id: UUID) -> Task:
        task = await self.db.get(Task, task_id)
        if not task:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    async def list_tasks(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        channel_id: Optional[UUID] = None,
        scheduled: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> list[Task]:
        """
        List tasks. Default order: priority_score desc (nulls last), due_at asc,
        created_at desc. ``scheduled`` filters on whether any time block references the task.
        """
        conditions = [Task.user_id == user_id]
        if status:
            conditions.append(Task.status == status)
        if channel_id:
            conditions.append(Task.channel_id == channel_id)

        has_blocks = exists().where(TimeBlock.task_id == Task.id)
        if scheduled == "scheduled":
            conditions.append(has_blocks)
        elif scheduled == "unscheduled":
            conditions.append(~has_blocks)

        priority_direction = sort_direction if sort_by == "priority" and sort_direction else "desc"
        priority_order = (
            Task.priority_score.asc().nulls_last()
            if priority_direction == "asc"
            else Task.priority_score.desc().nulls_last()
        )

        if sort_by == "due":
            due_order = Task.due_at.desc() if sort_direction == "desc" else Task.due_at.asc()
            order_by = [due_order, priority_order]
        elif sort_by == "created":
            created_order = Task.created_at.asc() if sort_direction == "asc" else Task.created_at.desc()
            order_by = [created_order]
        else:
            order_by = [priority_order, Task.due_at.asc(), Task.created_at.desc()]

        result = await self.db.execute(
            select(Task).where(and_(*conditions)).order_by(*order_by)
        )
        return list(result.scalars().all())

    async def update_task(self, task_id: UUID, changes: dict) -> Task:
        """
        Apply provided fields.

        A computed score of None (missing importance or urgency) leaves the
        stored score untouched unless priority_score was explicitly cleared.
        """
        task = await self.get_task(task_id)

        score_cleared = "priority_score" in changes and changes["priority_score"] is None
        computed = resolve_priority_score(
            changes.pop("priority_score", None),
            changes.get("importance"),
            changes.get("urgency"),
        )

        for key, value in changes.items():
            if hasattr(task, key):
                setattr(task, key, value)

        if computed is not None:
            task.priority_score = computed
        elif score_cleared:
            task.priority_score = None

        await self.db.commit()
        await self.db.refresh(task)
        return task

    async def delete_task(self, task_id: UUID) -> None:
        task = await self.get_task(task_id)
        await self.db.delete(task)
        await self.db.commit()
        logger.info(f"Deleted task {task_id}")
