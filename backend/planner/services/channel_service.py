"""Service for managing calendar channels."""

import logging
from uuid import UUID
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import NotFoundError
from planner.models.channel import Channel, ChannelVisibility
from planner.models.user import User

logger = logging.getLogger(__name__)


class ChannelService:
    """CRUD for channels. Channels bound to an external calendar receive its synced blocks."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_channel(
        self,
        user_id: UUID,
        name: str,
        visibility: str = ChannelVisibility.PRIVATE.value,
        target_calendar_id: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Channel:
        """Create a new channel."""
        if not await self.db.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        channel = Channel(
            user_id=user_id,
            name=name,
            visibility=visibility,
            target_calendar_id=target_calendar_id,
            color=color,
        )
        self.db.add(channel)
        await self.db.commit()
        await self.db.refresh(channel)

        logger.info(f"Created channel '{name}' for user {user_id}")
        return channel

    async def get_channel(self, channel_id: UUID) -> Channel:
        channel = await self.db.get(Channel, channel_id)
        if not channel:
            raise NotFoundError(f"Channel {channel_id} not found")
        return channel

    async def list_channels(self, user_id: UUID) -> list[Channel]:
        result = await self.db.execute(
            select(Channel)
            .where(Channel.user_id == user_id)
            .order_by(Channel.created_at.asc())
        )
        return list(result.scalars().all())

    async def update_channel(self, channel_id: UUID, changes: dict) -> Channel:
        """Apply the provided fields; explicit None clears nullable ones."""
        channel = await self.get_channel(channel_id)

        for key, value in changes.items():
            if hasattr(channel, key):
                setattr(channel, key, value)

        await self.db.commit()
        await self.db.refresh(channel)
        return channel

    async def delete_channel(self, channel_id: UUID) -> None:
        channel = await self.get_channel(channel_id)
        await self.db.delete(channel)
        await self.db.commit()
        logger.info(f"Deleted channel {channel_id}")
