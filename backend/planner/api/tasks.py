"""API endpoints for tasks and task priority."""

from uuid import UUID
from typing import Optional
from fastapi import APIRouter, Query, Response, status

from planner.api.deps import Database
from planner.models.task import TaskStatus
from planner.schemas.task import (
    CreateTaskRequest,
    UpdateTaskRequest,
    PriorityUpdateRequest,
    TaskResponse,
    TaskSort,
    SortDirection,
    ScheduledFilter,
)
from planner.services.task_service import TaskService

router = APIRouter()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(request: CreateTaskRequest, db: Database):
    """Create a task; the priority score is derived from importance and urgency when not given."""
    service = TaskService(db)
    task = await service.create_task(
        user_id=request.user_id,
        title=request.title,
        status=request.status,
        priority_level=request.priority_level,
        priority_score=request.priority_score,
        importance=request.importance,
        urgency=request.urgency,
        due_at=request.due_at,
        channel_id=request.channel_id,
        notes=request.notes,
    )
    return TaskResponse.model_validate(task)


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    db: Database,
    user_id: UUID = Query(..., alias="userId"),
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    channel_id: Optional[UUID] = Query(None, alias="channelId"),
    scheduled: Optional[ScheduledFilter] = Query(None),
    sort_by: Optional[TaskSort] = Query(None, alias="sortBy"),
    sort_direction: Optional[SortDirection] = Query(None, alias="sortDirection"),
):
    """List tasks, highest priority first by default."""
    service = TaskService(db)
    tasks = await service.list_tasks(
        user_id=user_id,
        status=task_status.value if task_status else None,
        channel_id=channel_id,
        scheduled=scheduled,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return [TaskResponse.model_validate(t) for t in tasks]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: UUID, db: Database):
    service = TaskService(db)
    return TaskResponse.model_validate(await service.get_task(task_id))


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(task_id: UUID, request: UpdateTaskRequest, db: Database):
    service = TaskService(db)
    task = await service.update_task(task_id, request.model_dump(exclude_unset=True))
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/priority", response_model=TaskResponse)
async def update_task_priority(task_id: UUID, request: PriorityUpdateRequest, db: Database):
    """Set priority level and/or recompute the priority score."""
    service = TaskService(db)
    task = await service.update_task(task_id, request.model_dump(exclude_unset=True))
    return TaskResponse.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: UUID, db: Database):
    service = TaskService(db)
    await service.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
