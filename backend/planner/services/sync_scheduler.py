"""Periodic pull of external calendars, owned by the application lifespan."""

import logging
from typing import Callable, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from planner.config import get_settings
from planner.models.integration import CalendarIntegration, SyncMode
from planner.models.timeblock import CalendarProvider
from planner.services.calendar_sync_service import CalendarSyncService
from planner.services.google_calendar_client import GoogleCalendarClient

logger = logging.getLogger(__name__)
settings = get_settings()


class SyncScheduler:
    """
    Runs the calendar poll job on an interval.

    start() and stop() are called from the FastAPI lifespan; nothing is
    scheduled at import time.
    """

    JOB_ID = "calendar_poll"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        interval_minutes: Optional[int] = None,
        client_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
    ):
        self.session_maker = session_maker
        self.interval_minutes = interval_minutes or settings.calendar_poll_interval_minutes
        self.client_factory = client_factory
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.sync_all_integrations,
            IntervalTrigger(minutes=self.interval_minutes),
            id=self.JOB_ID,
            name="Poll connected calendars",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Calendar poll scheduled every {self.interval_minutes} minutes")

    def stop(self) -> None:
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Calendar poll stopped")

    async def sync_all_integrations(self) -> dict:
        """Pull and reconcile every polling Google integration. One user's failure does not stop the rest."""
        logger.info("Starting calendar poll job")
        synced = 0
        failed = 0

        async with self.session_maker() as db:
            result = await db.execute(
                select(CalendarIntegration.id, CalendarIntegration.user_id)
                .where(CalendarIntegration.provider == CalendarProvider.GOOGLE.value)
                .where(CalendarIntegration.sync_mode == SyncMode.POLLING.value)
            )
            targets = list(result.all())

        # Separate session per user so a failed pass cannot poison the next one
        for integration_id, user_id in targets:
            async with self.session_maker() as db:
                try:
                    integration = await db.get(CalendarIntegration, integration_id)
                    if integration is None:
                        continue
                    service = CalendarSyncService(db)
                    await service.pull_and_reconcile(
                        integration,
                        client=self.client_factory(integration.access_token),
                    )
                    synced += 1
                except Exception as e:
                    logger.error(f"Calendar poll failed for user {user_id}: {e}", exc_info=True)
                    failed += 1

        logger.info(f"Calendar poll complete: {synced} synced, {failed} failed")
        return {"synced": synced, "failed": failed}
