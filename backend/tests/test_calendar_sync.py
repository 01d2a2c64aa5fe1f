"""Tests for calendar integrations, event reconciliation and the Google pull client."""

import logging
import httpx
import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import NotFoundError, ValidationError
from planner.models import Channel, TimeBlock, TimeBlockStatus, CalendarProvider, User
from planner.services.calendar_sync_service import CalendarSyncService, INITIAL_SYNC_LOOKBACK
from planner.services.google_calendar_client import (
    CalendarAuthError,
    EventPage,
    ExternalEvent,
    GoogleCalendarClient,
    SyncTokenExpired,
)
from planner.services.sync_scheduler import SyncScheduler
from planner.services.timeblock_service import TimeBlockService


def utc(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 5, day, hour, minute, tzinfo=timezone.utc)


def event(event_id: str = "evt-1", **overrides) -> ExternalEvent:
    values = {
        "id": event_id,
        "title": "Dentist",
        "start_at": utc(1, 10),
        "end_at": utc(1, 11),
        "status": TimeBlockStatus.CONFIRMED.value,
        "calendar_id": "primary",
    }
    values.update(overrides)
    return ExternalEvent(**values)


@pytest_asyncio.fixture
async def sync_service(test_session: AsyncSession):
    return CalendarSyncService(test_session)


@pytest_asyncio.fixture
async def connected(sync_service: CalendarSyncService, test_user: User):
    """A Google integration for the test user."""
    return await sync_service.connect(
        user_id=test_user.id,
        access_token="ya29.token",
        scopes=["https://www.googleapis.com/auth/calendar.readonly"],
    )


async def blocks_for(session: AsyncSession, user_id) -> list[TimeBlock]:
    result = await session.execute(select(TimeBlock).where(TimeBlock.user_id == user_id))
    return list(result.scalars().all())


# ==================== INTEGRATIONS ====================


@pytest.mark.asyncio
async def test_connect_creates_integration(sync_service, test_user, connected):
    assert connected.provider == CalendarProvider.GOOGLE.value
    assert connected.sync_state == {"scopes": ["https://www.googleapis.com/auth/calendar.readonly"]}

    status = await sync_service.get_status(test_user.id)
    assert status["status"] == "connected"
    assert status["last_synced_at"] is None


@pytest.mark.asyncio
async def test_connect_twice_refreshes_tokens(sync_service, test_user, connected):
    again = await sync_service.connect(
        user_id=test_user.id,
        access_token="ya29.new",
        scopes=["calendar"],
    )
    assert again.id == connected.id
    assert again.access_token == "ya29.new"


@pytest.mark.asyncio
async def test_connect_unknown_user(sync_service):
    with pytest.raises(NotFoundError):
        await sync_service.connect(user_id=uuid4(), access_token="t", scopes=["calendar"])


@pytest.mark.asyncio
async def test_disconnect_keeps_mirrored_blocks(sync_service, test_session, test_user, connected):
    await sync_service.reconcile(test_user.id, [event()])

    assert await sync_service.disconnect(test_user.id) is True
    assert await sync_service.disconnect(test_user.id) is False
    assert (await sync_service.get_status(test_user.id))["status"] == "disconnected"
    assert len(await blocks_for(test_session, test_user.id)) == 1


# ==================== RECONCILE ====================


@pytest.mark.asyncio
async def test_reconcile_requires_integration(sync_service, test_user):
    with pytest.raises(NotFoundError):
        await sync_service.reconcile(test_user.id, [event()])


@pytest.mark.asyncio
async def test_reconcile_creates_blocks(sync_service, test_session, test_user, connected):
    result = await sync_service.reconcile(test_user.id, [event("a"), event("b", start_at=utc(2, 9), end_at=utc(2, 10))])

    assert result.synced_count == 2
    blocks = await blocks_for(test_session, test_user.id)
    assert {b.calendar_event_id for b in blocks} == {"a", "b"}
    assert all(b.provider == CalendarProvider.GOOGLE.value for b in blocks)


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(sync_service, test_session, test_user, connected):
    """Test replaying the same batch leaves one block per external event."""
    batch = [event("a"), event("b", start_at=utc(2, 9), end_at=utc(2, 10))]

    await sync_service.reconcile(test_user.id, batch)
    await sync_service.reconcile(test_user.id, batch)

    assert len(await blocks_for(test_session, test_user.id)) == 2


@pytest.mark.asyncio
async def test_reconcile_updates_in_place(sync_service, test_session, test_user, connected):
    """Test a moved event keeps the block id and its original title."""
    first = await sync_service.reconcile(test_user.id, [event("a")])
    original_id = first.timeblocks[0].id

    second = await sync_service.reconcile(
        test_user.id,
        [event("a", title="Renamed", start_at=utc(1, 14), end_at=utc(1, 15), location="Clinic")],
    )

    block = second.timeblocks[0]
    assert block.id == original_id
    assert block.start_at.replace(tzinfo=timezone.utc) == utc(1, 14)
    assert block.location == "Clinic"
    assert block.title == "Dentist"


@pytest.mark.asyncio
async def test_reconcile_mirrors_cancellation(sync_service, test_user, connected):
    await sync_service.reconcile(test_user.id, [event("a")])
    result = await sync_service.reconcile(
        test_user.id, [event("a", status=TimeBlockStatus.CANCELLED.value)]
    )
    assert result.timeblocks[0].status == TimeBlockStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_reconcile_resolves_channel_by_calendar(sync_service, test_session, test_user, connected):
    channel = Channel(user_id=test_user.id, name="Work", target_calendar_id="work@group.calendar.google.com")
    test_session.add(channel)
    await test_session.commit()

    result = await sync_service.reconcile(
        test_user.id,
        [
            event("a", calendar_id="work@group.calendar.google.com"),
            event("b", calendar_id="unbound", start_at=utc(2, 9), end_at=utc(2, 10)),
        ],
    )

    by_event = {b.calendar_event_id: b for b in result.timeblocks}
    assert by_event["a"].channel_id == channel.id
    assert by_event["b"].channel_id is None


@pytest.mark.asyncio
async def test_reconcile_merges_sync_state(sync_service, test_user, connected):
    """Test lastSyncAt and cursor are added without dropping other keys."""
    result = await sync_service.reconcile(test_user.id, [], cursor="sync-token-1", calendar_id="primary")

    state = connected.sync_state
    assert state["scopes"] == ["https://www.googleapis.com/auth/calendar.readonly"]
    assert state["cursor"] == "sync-token-1"
    assert state["lastSyncAt"] == result.last_sync_at
    assert connected.calendar_id == "primary"
    assert result.synced_count == 0


@pytest.mark.asyncio
async def test_reconcile_rejects_inverted_event_before_writing(sync_service, test_session, test_user, connected):
    bad = event("bad", start_at=utc(1, 12), end_at=utc(1, 11))

    with pytest.raises(ValidationError):
        await sync_service.reconcile(test_user.id, [event("good"), bad])

    assert await blocks_for(test_session, test_user.id) == []


@pytest.mark.asyncio
async def test_reconcile_accepts_overlap_with_local_block(
    sync_service, test_session, test_user, connected, caplog
):
    """Test external events are upserted even when they overlap a local booking."""
    local = await TimeBlockService(test_session).create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
    )

    with caplog.at_level(logging.WARNING, logger="planner.services.calendar_sync_service"):
        result = await sync_service.reconcile(test_user.id, [event("a", start_at=utc(1, 10, 30), end_at=utc(1, 11, 30))])

    assert result.synced_count == 1
    assert len(await blocks_for(test_session, test_user.id)) == 2
    assert str(local.id) in caplog.text


@pytest.mark.asyncio
async def test_reconcile_deletion_cancels_mirror(sync_service, test_session, test_user, connected):
    """Test a timeless cancellation cancels the mirror, keeps its span and frees the slot."""
    first = await sync_service.reconcile(test_user.id, [event("a")])
    mirror_id = first.timeblocks[0].id

    result = await sync_service.reconcile(
        test_user.id,
        [ExternalEvent(id="a", title="Dentist", start_at=None, end_at=None, status=TimeBlockStatus.CANCELLED.value)],
    )

    block = result.timeblocks[0]
    assert block.id == mirror_id
    assert block.status == TimeBlockStatus.CANCELLED.value
    assert block.start_at.replace(tzinfo=timezone.utc) == utc(1, 10)
    assert block.end_at.replace(tzinfo=timezone.utc) == utc(1, 11)

    local = await TimeBlockService(test_session).create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
    )
    assert local.id != mirror_id


@pytest.mark.asyncio
async def test_reconcile_ignores_deletion_of_unknown_event(sync_service, test_session, test_user, connected):
    result = await sync_service.reconcile(
        test_user.id,
        [ExternalEvent(id="never-seen", title="x", start_at=None, end_at=None, status=TimeBlockStatus.CANCELLED.value)],
        cursor="c1",
    )

    assert result.synced_count == 0
    assert await blocks_for(test_session, test_user.id) == []
    assert connected.sync_state["cursor"] == "c1"


@pytest.mark.asyncio
async def test_reconcile_rejects_timeless_active_event(sync_service, test_user, connected):
    with pytest.raises(ValidationError):
        await sync_service.reconcile(
            test_user.id,
            [ExternalEvent(id="a", title="x", start_at=None, end_at=None, status=TimeBlockStatus.CONFIRMED.value)],
        )


# ==================== PULL ====================


@pytest.mark.asyncio
async def test_pull_uses_stored_cursor(sync_service, test_user, connected):
    await sync_service.reconcile(test_user.id, [], cursor="token-1")

    client = MagicMock()
    client.list_events = AsyncMock(return_value=EventPage(events=[event("a")], next_cursor="token-2"))

    result = await sync_service.pull_and_reconcile(connected, client=client)

    client.list_events.assert_awaited_once_with("primary", sync_token="token-1")
    assert result.synced_count == 1
    assert connected.sync_state["cursor"] == "token-2"


@pytest.mark.asyncio
async def test_pull_falls_back_to_full_resync(sync_service, test_user, connected):
    await sync_service.reconcile(test_user.id, [], cursor="stale")

    client = MagicMock()
    client.list_events = AsyncMock(side_effect=[
        SyncTokenExpired("gone"),
        EventPage(events=[], next_cursor="fresh"),
    ])

    await sync_service.pull_and_reconcile(connected, client=client)

    assert client.list_events.await_count == 2
    assert "time_min" in client.list_events.await_args.kwargs
    assert connected.sync_state["cursor"] == "fresh"


@pytest.mark.asyncio
async def test_first_pull_is_bounded_by_lookback(sync_service, test_session, test_user, connected):
    """Test a pull without a stored cursor asks Google for the last 30 days only."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(dict(request.url.params))
        return httpx.Response(200, json={
            "items": [{"id": "e1", "start": {"dateTime": "2024-05-01T10:00:00Z"}, "end": {"dateTime": "2024-05-01T11:00:00Z"}}],
            "nextSyncToken": "s1",
        })

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GoogleCalendarClient("tok", http_client=http, base_url="https://calendar.test/v3")
        await sync_service.pull_and_reconcile(connected, client=client)

    params = requests[0]
    assert "syncToken" not in params
    time_min = datetime.strptime(params["timeMin"], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    expected = datetime.now(timezone.utc) - INITIAL_SYNC_LOOKBACK
    assert abs((time_min - expected).total_seconds()) < 60
    assert connected.sync_state["cursor"] == "s1"


@pytest.mark.asyncio
async def test_incremental_pull_applies_deletions(sync_service, test_session, test_user, connected):
    """Test a deletion in the next incremental page cancels the mirrored block."""
    pages = [
        {
            "items": [{"id": "e1", "status": "confirmed", "start": {"dateTime": "2024-05-01T10:00:00Z"}, "end": {"dateTime": "2024-05-01T11:00:00Z"}}],
            "nextSyncToken": "s1",
        },
        {"items": [{"id": "e1", "status": "cancelled"}], "nextSyncToken": "s2"},
    ]
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(dict(request.url.params))
        return httpx.Response(200, json=pages[len(requests) - 1])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GoogleCalendarClient("tok", http_client=http, base_url="https://calendar.test/v3")
        await sync_service.pull_and_reconcile(connected, client=client)
        await sync_service.pull_and_reconcile(connected, client=client)

    assert requests[1]["syncToken"] == "s1"
    blocks = await blocks_for(test_session, test_user.id)
    assert len(blocks) == 1
    assert blocks[0].status == TimeBlockStatus.CANCELLED.value
    assert connected.sync_state["cursor"] == "s2"


@pytest.mark.asyncio
async def test_scheduler_isolates_failures(test_session_maker, test_session, test_user, other_user):
    """Test one user's failing pull does not stop the others."""
    service = CalendarSyncService(test_session)
    await service.connect(user_id=test_user.id, access_token="good", scopes=["calendar"])
    await service.connect(user_id=other_user.id, access_token="bad", scopes=["calendar"])

    def client_factory(token):
        client = MagicMock()
        if token == "bad":
            client.list_events = AsyncMock(side_effect=CalendarAuthError("rejected"))
        else:
            client.list_events = AsyncMock(return_value=EventPage(events=[event("a")], next_cursor="c"))
        return client

    scheduler = SyncScheduler(test_session_maker, interval_minutes=5, client_factory=client_factory)
    outcome = await scheduler.sync_all_integrations()

    assert outcome == {"synced": 1, "failed": 1}
    assert scheduler.running is False


# ==================== GOOGLE CLIENT ====================


def test_parse_timed_event():
    parsed = GoogleCalendarClient.parse_event(
        {
            "id": "g1",
            "summary": "Lunch",
            "status": "confirmed",
            "start": {"dateTime": "2024-05-01T12:00:00+02:00"},
            "end": {"dateTime": "2024-05-01T13:00:00+02:00"},
            "recurrence": ["EXDATE:20240508T100000Z", "RRULE:FREQ=WEEKLY;COUNT=4"],
            "location": "Cafe",
        },
        "primary",
    )

    assert parsed.start_at == utc(1, 10)
    assert parsed.end_at == utc(1, 11)
    assert parsed.status == TimeBlockStatus.CONFIRMED.value
    assert parsed.recurrence_rule == "FREQ=WEEKLY;COUNT=4"
    assert parsed.calendar_id == "primary"


def test_parse_all_day_event():
    parsed = GoogleCalendarClient.parse_event(
        {"id": "g2", "start": {"date": "2024-05-01"}, "end": {"date": "2024-05-02"}}
    )
    assert parsed.start_at == utc(1, 0)
    assert parsed.end_at == utc(2, 0)
    assert parsed.title == "Untitled Event"


def test_parse_event_without_span_is_skipped():
    assert GoogleCalendarClient.parse_event({"id": "g3", "status": "confirmed"}) is None


def test_parse_deleted_event_keeps_cancellation():
    """Test an incremental deletion (id + cancelled, no times) is not dropped."""
    parsed = GoogleCalendarClient.parse_event({"id": "evt-1", "status": "cancelled"}, "primary")

    assert parsed is not None
    assert parsed.id == "evt-1"
    assert parsed.status == TimeBlockStatus.CANCELLED.value
    assert parsed.start_at is None
    assert parsed.end_at is None


@pytest.mark.asyncio
async def test_list_events_follows_pages():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(dict(request.url.params))
        assert request.headers["Authorization"] == "Bearer tok"
        if "pageToken" not in request.url.params:
            return httpx.Response(200, json={
                "items": [{"id": "e1", "start": {"dateTime": "2024-05-01T10:00:00Z"}, "end": {"dateTime": "2024-05-01T11:00:00Z"}}],
                "nextPageToken": "p2",
            })
        return httpx.Response(200, json={
            "items": [{"id": "e2", "start": {"dateTime": "2024-05-02T10:00:00Z"}, "end": {"dateTime": "2024-05-02T11:00:00Z"}}],
            "nextSyncToken": "s1",
        })

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GoogleCalendarClient("tok", http_client=http, base_url="https://calendar.test/v3")
        page = await client.list_events("primary", sync_token="s0")

    assert [e.id for e in page.events] == ["e1", "e2"]
    assert page.next_cursor == "s1"
    assert calls[0]["syncToken"] == "s0"
    assert calls[1]["pageToken"] == "p2"


@pytest.mark.asyncio
async def test_list_events_expired_token():
    transport = httpx.MockTransport(lambda request: httpx.Response(410, json={}))
    async with httpx.AsyncClient(transport=transport) as http:
        client = GoogleCalendarClient("tok", http_client=http, base_url="https://calendar.test/v3")
        with pytest.raises(SyncTokenExpired):
            await client.list_events("primary", sync_token="old")


@pytest.mark.asyncio
async def test_list_events_rejected_token():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={}))
    async with httpx.AsyncClient(transport=transport) as http:
        client = GoogleCalendarClient("tok", http_client=http, base_url="https://calendar.test/v3")
        with pytest.raises(CalendarAuthError):
            await client.list_events("primary")
