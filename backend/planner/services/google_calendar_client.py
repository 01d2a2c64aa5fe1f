"""
Thin Google Calendar v3 client for pull-based sync.

Only reads events with an access token that was obtained elsewhere; token
exchange and refresh are not handled here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Optional

import httpx
from dateutil import parser as date_parser

from planner.config import get_settings
from planner.models.timeblock import TimeBlockStatus

logger = logging.getLogger(__name__)
settings = get_settings()

GOOGLE_STATUS_MAP = {
    "confirmed": TimeBlockStatus.CONFIRMED.value,
    "tentative": TimeBlockStatus.TENTATIVE.value,
    "cancelled": TimeBlockStatus.CANCELLED.value,
}


@dataclass
class ExternalEvent:
    """An event as delivered by an external calendar, before reconciliation."""

    id: str
    title: str
    # None only for cancellations delivered without times
    start_at: Optional[datetime]
    end_at: Optional[datetime]
    status: str = TimeBlockStatus.TENTATIVE.value
    calendar_id: Optional[str] = None
    recurrence_rule: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class EventPage:
    """All events from one pull plus the cursor to resume from next time."""

    events: list[ExternalEvent]
    next_cursor: Optional[str]


class CalendarAuthError(Exception):
    """The stored access token was rejected."""


class SyncTokenExpired(Exception):
    """Google invalidated the incremental sync token; a full resync is needed."""


class GoogleCalendarClient:
    """Pulls events for one calendar, following pagination and sync tokens."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ):
        self.access_token = access_token
        self.base_url = (base_url or settings.google_calendar_api_base).rstrip("/")
        self._http = http_client

    async def list_events(
        self,
        calendar_id: str = "primary",
        sync_token: Optional[str] = None,
        time_min: Optional[datetime] = None,
    ) -> EventPage:
        """
        Fetch changed events since ``sync_token``, or everything after ``time_min``.

        Raises:
            SyncTokenExpired: on HTTP 410 for an incremental request.
            CalendarAuthError: on HTTP 401.
        """
        params: dict = {"singleEvents": "true", "showDeleted": "true", "maxResults": 250}
        if sync_token:
            params["syncToken"] = sync_token
        elif time_min:
            params["timeMin"] = time_min.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        url = f"{self.base_url}/calendars/{calendar_id}/events"
        headers = {"Authorization": f"Bearer {self.access_token}"}

        events: list[ExternalEvent] = []
        next_cursor: Optional[str] = None
        page_token: Optional[str] = None

        client = self._http or httpx.AsyncClient(timeout=settings.calendar_request_timeout_seconds)
        try:
            while True:
                page_params = dict(params)
                if page_token:
                    page_params["pageToken"] = page_token

                response = await client.get(url, params=page_params, headers=headers)
                if response.status_code == 410:
                    raise SyncTokenExpired(f"Sync token expired for calendar {calendar_id}")
                if response.status_code == 401:
                    raise CalendarAuthError(f"Access token rejected for calendar {calendar_id}")
                response.raise_for_status()

                data = response.json()
                for item in data.get("items", []):
                    event = self.parse_event(item, calendar_id)
                    if event is not None:
                        events.append(event)

                page_token = data.get("nextPageToken")
                if not page_token:
                    next_cursor = data.get("nextSyncToken")
                    break
        finally:
            if self._http is None:
                await client.aclose()

        logger.info(f"Fetched {len(events)} events from Google calendar {calendar_id}")
        return EventPage(events=events, next_cursor=next_cursor)

    @staticmethod
    def parse_event(item: dict, calendar_id: Optional[str] = None) -> Optional[ExternalEvent]:
        """
        Map a Google event resource to an ExternalEvent.

        Deleted events arrive in incremental pulls as just an id and
        status "cancelled"; those become status-only events with no span.
        Anything else without a usable span is skipped (None).
        """
        event_id = item.get("id")
        if not event_id:
            return None

        status = GOOGLE_STATUS_MAP.get(item.get("status", ""), TimeBlockStatus.TENTATIVE.value)
        start = _parse_event_time(item.get("start") or {})
        end = _parse_event_time(item.get("end") or {})
        if start is None or end is None or end <= start:
            if status == TimeBlockStatus.CANCELLED.value:
                return ExternalEvent(
                    id=event_id,
                    title=item.get("summary") or "Untitled Event",
                    start_at=None,
                    end_at=None,
                    status=status,
                    calendar_id=calendar_id,
                )
            logger.debug(f"Skipping Google event without a usable time span: {event_id}")
            return None

        recurrence = item.get("recurrence") or []
        rrule = next((line for line in recurrence if line.startswith("RRULE:")), None)

        return ExternalEvent(
            id=event_id,
            title=item.get("summary") or "Untitled Event",
            start_at=start,
            end_at=end,
            status=status,
            calendar_id=calendar_id,
            recurrence_rule=rrule[len("RRULE:"):] if rrule else None,
            location=item.get("location"),
            notes=item.get("description"),
        )


def _parse_event_time(value: dict) -> Optional[datetime]:
    """Google gives either dateTime (timed) or date (all-day, treated as UTC midnight)."""
    if value.get("dateTime"):
        parsed = date_parser.isoparse(value["dateTime"])
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    if value.get("date"):
        day = date_parser.isoparse(value["date"]).date()
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    return None
