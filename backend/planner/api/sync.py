"""API endpoints for the Google calendar provider: connect, status and event polling."""

from uuid import UUID
from fastapi import APIRouter, Query, Request, status

from planner.api.deps import Database
from planner.config import settings
from planner.models.timeblock import CalendarProvider
from planner.rate_limiter import limiter
from planner.schemas.sync import (
    ConnectRequest,
    ConnectResponse,
    DisconnectRequest,
    DisconnectResponse,
    SyncStatusResponse,
    PollRequest,
    PollResponse,
)
from planner.schemas.timeblock import TimeBlockResponse
from planner.services.calendar_sync_service import CalendarSyncService
from planner.services.google_calendar_client import ExternalEvent

router = APIRouter()

PROVIDER = CalendarProvider.GOOGLE.value


@router.post("/connect", response_model=ConnectResponse, status_code=status.HTTP_202_ACCEPTED)
async def connect(request: ConnectRequest, db: Database):
    """Store tokens for the user's Google calendar. Token exchange happens client-side."""
    service = CalendarSyncService(db)
    integration = await service.connect(
        user_id=request.user_id,
        access_token=request.access_token,
        scopes=request.scopes,
        refresh_token=request.refresh_token,
        expires_at=request.expires_at,
        provider=PROVIDER,
    )
    return ConnectResponse(
        provider=PROVIDER,
        user_id=request.user_id,
        scopes=request.scopes,
        status="connected",
        integration_id=integration.id,
    )


@router.post("/disconnect", response_model=DisconnectResponse)
async def disconnect(request: DisconnectRequest, db: Database):
    """Remove the integration. Already mirrored blocks stay."""
    service = CalendarSyncService(db)
    await service.disconnect(request.user_id, PROVIDER)
    return DisconnectResponse(provider=PROVIDER, status="disconnected")


@router.get("/status", response_model=SyncStatusResponse)
async def get_status(db: Database, user_id: UUID = Query(..., alias="userId")):
    service = CalendarSyncService(db)
    return SyncStatusResponse(**await service.get_status(user_id, PROVIDER))


@router.post("/poll", response_model=PollResponse)
@limiter.limit(settings.rate_limit_poll)
async def poll(request: Request, body: PollRequest, db: Database):
    """
    Reconcile events pulled from Google into local time blocks.

    Requires a prior /connect; returns 404 otherwise.
    """
    service = CalendarSyncService(db)
    result = await service.reconcile(
        user_id=body.user_id,
        events=[ExternalEvent(**event.model_dump()) for event in body.events],
        cursor=body.cursor,
        calendar_id=body.calendar_id,
        provider=PROVIDER,
    )
    return PollResponse(
        provider=PROVIDER,
        synced=result.synced_count,
        last_sync_at=result.last_sync_at,
        timeblocks=[TimeBlockResponse.model_validate(b) for b in result.timeblocks],
    )
