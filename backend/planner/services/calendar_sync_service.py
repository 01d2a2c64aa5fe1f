"""
Calendar integration management and reconciliation of external events.

Reconciliation mirrors external events into local time blocks keyed by
(user_id, calendar_event_id). It never deletes local blocks and does not run
the conflict checker: the external calendar is taken as authoritative, and
overlaps with local blocks are only logged.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import NotFoundError, ValidationError
from planner.models.channel import Channel
from planner.models.integration import CalendarIntegration, SyncMode
from planner.models.timeblock import TimeBlock, TimeBlockStatus, CalendarProvider
from planner.models.user import User
from planner.services.conflict_service import ConflictChecker
from planner.services.google_calendar_client import (
    ExternalEvent,
    GoogleCalendarClient,
    SyncTokenExpired,
)
from planner.services.intervals import as_utc

logger = logging.getLogger(__name__)

# A pull without a cursor (first sync or expired token) starts this far back
INITIAL_SYNC_LOOKBACK = timedelta(days=30)


@dataclass
class SyncResult:
    """Outcome of one reconciliation pass."""

    synced_count: int
    last_sync_at: str
    cursor: Optional[str] = None
    timeblocks: list[TimeBlock] = field(default_factory=list)


class CalendarSyncService:
    """Connects external calendars and reconciles their events into time blocks."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conflicts = ConflictChecker(db)

    # ==================== INTEGRATIONS ====================

    async def get_integration(
        self, user_id: UUID, provider: str = CalendarProvider.GOOGLE.value
    ) -> Optional[CalendarIntegration]:
        """Get the user's integration record for a provider."""
        result = await self.db.execute(
            select(CalendarIntegration).where(
                and_(
                    CalendarIntegration.user_id == user_id,
                    CalendarIntegration.provider == provider,
                )
            )
        )
        return result.scalar_one_or_none()

    async def connect(
        self,
        user_id: UUID,
        access_token: str,
        scopes: list[str],
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        provider: str = CalendarProvider.GOOGLE.value,
    ) -> CalendarIntegration:
        """Create or refresh the integration record with newly granted tokens."""
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        integration = await self.get_integration(user_id, provider)
        if integration:
            integration.access_token = access_token
            integration.refresh_token = refresh_token
            integration.expires_at = expires_at
            integration.sync_state = {"scopes": scopes}
        else:
            integration = CalendarIntegration(
                user_id=user_id,
                provider=provider,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                sync_mode=SyncMode.POLLING.value,
                sync_state={"scopes": scopes},
            )
            self.db.add(integration)

        await self.db.commit()
        await self.db.refresh(integration)

        logger.info(f"Connected {provider} calendar for user {user_id}")
        return integration

    async def disconnect(
        self, user_id: UUID, provider: str = CalendarProvider.GOOGLE.value
    ) -> bool:
        """Remove the integration. Mirrored blocks are kept."""
        integration = await self.get_integration(user_id, provider)
        if not integration:
            return False

        await self.db.delete(integration)
        await self.db.commit()

        logger.info(f"Disconnected {provider} calendar for user {user_id}")
        return True

    async def get_status(
        self, user_id: UUID, provider: str = CalendarProvider.GOOGLE.value
    ) -> dict:
        """Connection status as shown to the client."""
        integration = await self.get_integration(user_id, provider)
        if not integration:
            return {"status": "disconnected", "provider": provider}

        sync_state = integration.sync_state or {}
        return {
            "status": "connected",
            "provider": provider,
            "integration_id": integration.id,
            "last_synced_at": sync_state.get("lastSyncAt"),
            "sync_mode": integration.sync_mode,
            "calendar_id": integration.calendar_id,
        }

    # ==================== RECONCILIATION ====================

    async def reconcile(
        self,
        user_id: UUID,
        events: list[ExternalEvent],
        cursor: Optional[str] = None,
        calendar_id: Optional[str] = None,
        provider: str = CalendarProvider.GOOGLE.value,
    ) -> SyncResult:
        """
        Upsert each external event as a local time block, then record sync state.

        Each event is committed on its own; a failure on one event leaves the
        events before it applied.

        Raises:
            NotFoundError: if the user has no integration for ``provider``.
            ValidationError: if any event has end <= start (checked before writing).
        """
        integration = await self.get_integration(user_id, provider)
        if not integration:
            raise NotFoundError(f"{provider.capitalize()} integration not found for user")

        for event in events:
            if event.start_at is None or event.end_at is None:
                if event.status != TimeBlockStatus.CANCELLED.value:
                    raise ValidationError(
                        f"Event {event.id} has no time span",
                        details={"eventId": event.id},
                    )
            elif as_utc(event.end_at) <= as_utc(event.start_at):
                raise ValidationError(
                    f"Event {event.id} ends before it starts",
                    details={"eventId": event.id},
                )

        channel_cache: dict[str, Optional[UUID]] = {}
        synced: list[TimeBlock] = []

        for event in events:
            channel_id = await self._resolve_channel(user_id, event.calendar_id, channel_cache)
            block = await self._upsert_event(user_id, event, channel_id, provider)
            if block is None:
                continue
            synced.append(block)
            await self._log_overlap(block)

        last_sync_at = datetime.now(timezone.utc).isoformat()

        # New dict so the JSON column registers the change
        integration.sync_state = {
            **(integration.sync_state or {}),
            "lastSyncAt": last_sync_at,
            "cursor": cursor,
        }
        if calendar_id:
            integration.calendar_id = calendar_id
        await self.db.commit()

        logger.info(f"Reconciled {len(synced)} {provider} events for user {user_id}")
        return SyncResult(
            synced_count=len(synced),
            last_sync_at=last_sync_at,
            cursor=cursor,
            timeblocks=synced,
        )

    async def pull_and_reconcile(
        self,
        integration: CalendarIntegration,
        client: Optional[GoogleCalendarClient] = None,
    ) -> SyncResult:
        """Fetch changes from Google using the stored cursor and reconcile them."""
        client = client or GoogleCalendarClient(integration.access_token)
        calendar_id = integration.calendar_id or "primary"
        cursor = (integration.sync_state or {}).get("cursor")

        since = datetime.now(timezone.utc) - INITIAL_SYNC_LOOKBACK

        if cursor:
            try:
                page = await client.list_events(calendar_id, sync_token=cursor)
            except SyncTokenExpired:
                logger.warning(f"Sync token expired for user {integration.user_id}; running full resync")
                page = await client.list_events(calendar_id, time_min=since)
        else:
            page = await client.list_events(calendar_id, time_min=since)

        return await self.reconcile(
            integration.user_id,
            page.events,
            cursor=page.next_cursor,
            calendar_id=integration.calendar_id,
            provider=integration.provider,
        )

    # ==================== HELPERS ====================

    async def _resolve_channel(
        self,
        user_id: UUID,
        calendar_id: Optional[str],
        cache: dict[str, Optional[UUID]],
    ) -> Optional[UUID]:
        """Channel bound to the event's calendar, or None."""
        if not calendar_id:
            return None
        if calendar_id not in cache:
            result = await self.db.execute(
                select(Channel.id).where(
                    and_(
                        Channel.user_id == user_id,
                        Channel.target_calendar_id == calendar_id,
                    )
                ).limit(1)
            )
            cache[calendar_id] = result.scalar_one_or_none()
        return cache[calendar_id]

    async def _upsert_event(
        self,
        user_id: UUID,
        event: ExternalEvent,
        channel_id: Optional[UUID],
        provider: str,
    ) -> Optional[TimeBlock]:
        """
        Update the block mirroring ``event`` in place, or create it.

        A cancellation without times only cancels an existing mirror, keeping
        its stored span; with no mirror there is nothing to do (None).
        """
        result = await self.db.execute(
            select(TimeBlock).where(
                and_(
                    TimeBlock.user_id == user_id,
                    TimeBlock.calendar_event_id == event.id,
                )
            )
        )
        block = result.scalar_one_or_none()

        if event.start_at is None or event.end_at is None:
            if block is None:
                logger.debug(f"Ignoring cancellation of unknown event {event.id} for user {user_id}")
                return None
            block.status = TimeBlockStatus.CANCELLED.value
        elif block:
            block.start_at = as_utc(event.start_at)
            block.end_at = as_utc(event.end_at)
            block.status = event.status
            block.channel_id = channel_id
            block.recurrence_rule = event.recurrence_rule
            block.location = event.location
            block.notes = event.notes
        else:
            block = TimeBlock(
                user_id=user_id,
                start_at=as_utc(event.start_at),
                end_at=as_utc(event.end_at),
                status=event.status,
                provider=provider,
                calendar_event_id=event.id,
                title=event.title,
                channel_id=channel_id,
                recurrence_rule=event.recurrence_rule,
                location=event.location,
                notes=event.notes,
            )
            self.db.add(block)

        await self.db.commit()
        await self.db.refresh(block)
        return block

    async def _log_overlap(self, block: TimeBlock) -> None:
        if block.status == TimeBlockStatus.CANCELLED.value:
            return
        other = await self.conflicts.find_conflict(
            block.user_id, block.start_at, block.end_at, exclude_id=block.id
        )
        if other is not None:
            logger.warning(
                f"Synced event {block.calendar_event_id} overlaps block {other.id} "
                f"for user {block.user_id}"
            )
