"""API endpoints for time blocks: booking, editing and auto-scheduling."""

from uuid import UUID
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Query, Request, Response, status

from planner.api.deps import Database
from planner.config import settings
from planner.models.timeblock import TimeBlockStatus
from planner.schemas.timeblock import (
    CreateTimeBlockRequest,
    UpdateTimeBlockRequest,
    SuggestTimeBlockRequest,
    TimeBlockResponse,
)
from planner.rate_limiter import limiter
from planner.services.timeblock_service import TimeBlockService, TimeBlockChanges

router = APIRouter()


@router.post("", response_model=TimeBlockResponse, status_code=status.HTTP_201_CREATED)
async def create_timeblock(request: CreateTimeBlockRequest, db: Database):
    """Book a time block. Fails with 409 if it overlaps an active block."""
    service = TimeBlockService(db)
    block = await service.create_timeblock(
        user_id=request.user_id,
        start_at=request.start_at,
        end_at=request.end_at,
        task_id=request.task_id,
        channel_id=request.channel_id,
        status=request.status,
        provider=request.provider,
        title=request.title,
        location=request.location,
        notes=request.notes,
        recurrence_rule=request.recurrence_rule,
    )
    return TimeBlockResponse.model_validate(block)


# Must be registered before /{block_id}
@router.post("/suggest", response_model=TimeBlockResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_suggest)
async def suggest_timeblock(request: Request, body: SuggestTimeBlockRequest, db: Database):
    """
    Auto-schedule a tentative block in the first open slot within working hours.

    Returns 409 when nothing fits in the search window.
    """
    service = TimeBlockService(db)
    block = await service.suggest_timeblock(
        user_id=body.user_id,
        duration_minutes=body.duration_minutes,
        window_start=body.window_start,
        window_end=body.window_end,
        preferred_start_hour=body.preferred_start_hour,
        preferred_end_hour=body.preferred_end_hour,
        task_id=body.task_id,
        channel_id=body.channel_id,
        title=body.title,
        timezone_name=body.timezone,
    )
    return TimeBlockResponse.model_validate(block)


@router.get("", response_model=list[TimeBlockResponse])
async def list_timeblocks(
    db: Database,
    user_id: UUID = Query(..., alias="userId"),
    block_status: Optional[TimeBlockStatus] = Query(None, alias="status"),
    task_id: Optional[UUID] = Query(None, alias="taskId"),
    channel_id: Optional[UUID] = Query(None, alias="channelId"),
    range_start: Optional[datetime] = Query(None, alias="from"),
    range_end: Optional[datetime] = Query(None, alias="to"),
):
    """List a user's time blocks ordered by start."""
    service = TimeBlockService(db)
    blocks = await service.list_timeblocks(
        user_id=user_id,
        status=block_status.value if block_status else None,
        task_id=task_id,
        channel_id=channel_id,
        range_start=range_start,
        range_end=range_end,
    )
    return [TimeBlockResponse.model_validate(b) for b in blocks]


@router.get("/{block_id}", response_model=TimeBlockResponse)
async def get_timeblock(block_id: UUID, db: Database):
    """Get a single time block."""
    service = TimeBlockService(db)
    return TimeBlockResponse.model_validate(await service.get_timeblock(block_id))


@router.patch("/{block_id}", response_model=TimeBlockResponse)
async def update_timeblock(block_id: UUID, request: UpdateTimeBlockRequest, db: Database):
    """Partially update a time block, re-checking conflicts against the new span."""
    service = TimeBlockService(db)
    changes = TimeBlockChanges(**request.model_dump(exclude_unset=True))
    block = await service.update_timeblock(block_id, changes)
    return TimeBlockResponse.model_validate(block)


@router.delete("/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_timeblock(block_id: UUID, db: Database):
    """Delete a time block."""
    service = TimeBlockService(db)
    await service.delete_timeblock(block_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
