"""API endpoints for focus sessions."""

from uuid import UUID
from typing import Optional
from fastapi import APIRouter, Query, status

from planner.api.deps import Database
from planner.models.focus_session import FocusSessionStatus
from planner.schemas.focus_session import (
    StartFocusSessionRequest,
    CompleteFocusSessionRequest,
    FocusSessionResponse,
)
from planner.services.focus_session_service import FocusSessionService

router = APIRouter()


@router.post("", response_model=FocusSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_focus_session(request: StartFocusSessionRequest, db: Database):
    """Start a focus session. Returns 409 if channelId is given and the span is taken."""
    service = FocusSessionService(db)
    session = await service.start_session(
        user_id=request.user_id,
        task_id=request.task_id,
        planned_minutes=request.planned_minutes,
        start_at=request.start_at,
        end_at=request.end_at,
        goal=request.goal,
        channel_id=request.channel_id,
    )
    return FocusSessionResponse.model_validate(session)


@router.get("", response_model=list[FocusSessionResponse])
async def list_focus_sessions(
    db: Database,
    user_id: UUID = Query(..., alias="userId"),
    session_status: Optional[FocusSessionStatus] = Query(None, alias="status"),
):
    service = FocusSessionService(db)
    sessions = await service.list_sessions(
        user_id,
        status=session_status.value if session_status else None,
    )
    return [FocusSessionResponse.model_validate(s) for s in sessions]


@router.get("/{session_id}", response_model=FocusSessionResponse)
async def get_focus_session(session_id: UUID, db: Database):
    service = FocusSessionService(db)
    return FocusSessionResponse.model_validate(await service.get_session(session_id))


@router.patch("/{session_id}/complete", response_model=FocusSessionResponse)
async def complete_focus_session(session_id: UUID, request: CompleteFocusSessionRequest, db: Database):
    """Complete a session and add its minutes to the task."""
    service = FocusSessionService(db)
    session = await service.complete_session(
        session_id,
        actual_minutes=request.actual_minutes,
        summary=request.summary,
        interruptions=request.interruptions,
    )
    return FocusSessionResponse.model_validate(session)


@router.post("/{session_id}/cancel", response_model=FocusSessionResponse)
async def cancel_focus_session(session_id: UUID, db: Database):
    """Cancel an active session, freeing any time block it reserved."""
    service = FocusSessionService(db)
    return FocusSessionResponse.model_validate(await service.cancel_session(session_id))
