"""API endpoints for channels."""

from uuid import UUID
from fastapi import APIRouter, Query, Response, status

from planner.api.deps import Database
from planner.schemas.channel import CreateChannelRequest, UpdateChannelRequest, ChannelResponse
from planner.services.channel_service import ChannelService

router = APIRouter()


@router.post("", response_model=ChannelResponse, status_code=status.HTTP_201_CREATED)
async def create_channel(request: CreateChannelRequest, db: Database):
    """Create a channel, optionally bound to an external calendar id."""
    service = ChannelService(db)
    channel = await service.create_channel(
        user_id=request.user_id,
        name=request.name,
        visibility=request.visibility,
        target_calendar_id=request.target_calendar_id,
        color=request.color,
    )
    return ChannelResponse.model_validate(channel)


@router.get("", response_model=list[ChannelResponse])
async def list_channels(db: Database, user_id: UUID = Query(..., alias="userId")):
    """List a user's channels, oldest first."""
    service = ChannelService(db)
    return [ChannelResponse.model_validate(c) for c in await service.list_channels(user_id)]


@router.get("/{channel_id}", response_model=ChannelResponse)
async def get_channel(channel_id: UUID, db: Database):
    service = ChannelService(db)
    return ChannelResponse.model_validate(await service.get_channel(channel_id))


@router.patch("/{channel_id}", response_model=ChannelResponse)
async def update_channel(channel_id: UUID, request: UpdateChannelRequest, db: Database):
    service = ChannelService(db)
    channel = await service.update_channel(channel_id, request.model_dump(exclude_unset=True))
    return ChannelResponse.model_validate(channel)


@router.delete("/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel(channel_id: UUID, db: Database):
    service = ChannelService(db)
    await service.delete_channel(channel_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
