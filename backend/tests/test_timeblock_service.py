"""Tests for time block booking, conflict checks and auto-scheduling."""

import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planner.errors import ConflictError, IntegrityRace, NotFoundError, ValidationError
from planner.models import Channel, Task, TimeBlock, TimeBlockStatus, CalendarProvider, User
from planner.services.conflict_service import ConflictChecker
from planner.services.timeblock_service import (
    OVERLAP_CONSTRAINT,
    TimeBlockChanges,
    TimeBlockService,
    UNSET,
)


def utc(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 5, day, hour, minute, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def service(test_session: AsyncSession):
    return TimeBlockService(test_session)


@pytest_asyncio.fixture
async def booked(service: TimeBlockService, test_user: User):
    """A confirmed block 10:00-11:00 on May 1."""
    return await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
        status=TimeBlockStatus.CONFIRMED.value,
        title="Standup",
    )


# ==================== CREATE ====================


@pytest.mark.asyncio
async def test_create_timeblock(service, test_user):
    """Test booking a block stores a UTC span with local provider defaults."""
    block = await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
        title="Deep work",
    )

    assert block.id is not None
    assert block.user_id == test_user.id
    assert block.status == TimeBlockStatus.TENTATIVE.value
    assert block.provider == CalendarProvider.LOCAL.value
    assert block.title == "Deep work"


@pytest.mark.asyncio
async def test_overlapping_create_is_rejected(service, test_user, booked):
    """Test [10:30, 11:30) collides with [10:00, 11:00) and reports the colliding block."""
    with pytest.raises(ConflictError) as exc_info:
        await service.create_timeblock(
            user_id=test_user.id,
            start_at=utc(1, 10, 30),
            end_at=utc(1, 11, 30),
        )

    assert exc_info.value.conflict.id == booked.id
    assert exc_info.value.window_exhausted is False
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_back_to_back_create_is_allowed(service, test_user, booked):
    """Test a block starting exactly when another ends does not conflict."""
    block = await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 11),
        end_at=utc(1, 12),
    )
    assert block.start_at.replace(tzinfo=timezone.utc) == utc(1, 11)


@pytest.mark.asyncio
async def test_cancelled_block_does_not_occupy_time(service, test_user, booked):
    """Test cancelling a block frees its interval for new bookings."""
    await service.update_timeblock(
        booked.id, TimeBlockChanges(status=TimeBlockStatus.CANCELLED.value)
    )

    block = await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
    )
    assert block.id != booked.id


@pytest.mark.asyncio
async def test_creating_cancelled_block_skips_conflict_check(service, test_user, booked):
    block = await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
        status=TimeBlockStatus.CANCELLED.value,
    )
    assert block.status == TimeBlockStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_other_users_blocks_do_not_conflict(service, other_user, booked):
    """Test conflict checks are scoped to one user."""
    block = await service.create_timeblock(
        user_id=other_user.id,
        start_at=utc(1, 10),
        end_at=utc(1, 11),
    )
    assert block.user_id == other_user.id


@pytest.mark.asyncio
async def test_create_with_inverted_span_is_rejected(service, test_user):
    with pytest.raises(ValidationError):
        await service.create_timeblock(
            user_id=test_user.id,
            start_at=utc(1, 11),
            end_at=utc(1, 10),
        )


@pytest.mark.asyncio
async def test_create_for_unknown_user(service):
    with pytest.raises(NotFoundError):
        await service.create_timeblock(
            user_id=uuid4(),
            start_at=utc(1, 10),
            end_at=utc(1, 11),
        )


@pytest.mark.asyncio
async def test_create_with_unknown_task(service, test_user):
    with pytest.raises(NotFoundError):
        await service.create_timeblock(
            user_id=test_user.id,
            start_at=utc(1, 10),
            end_at=utc(1, 11),
            task_id=uuid4(),
        )


# ==================== UPDATE ====================


@pytest.mark.asyncio
async def test_update_does_not_conflict_with_itself(service, booked):
    """Test moving a block within its own old span succeeds."""
    updated = await service.update_timeblock(
        booked.id, TimeBlockChanges(end_at=utc(1, 11, 30))
    )

    assert updated.id == booked.id
    assert updated.end_at.replace(tzinfo=timezone.utc) == utc(1, 11, 30)
    # start falls back to the stored value
    assert updated.start_at.replace(tzinfo=timezone.utc) == utc(1, 10)


@pytest.mark.asyncio
async def test_update_into_another_block_conflicts(service, test_user, booked):
    later = await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 12),
        end_at=utc(1, 13),
    )

    with pytest.raises(ConflictError) as exc_info:
        await service.update_timeblock(
            later.id, TimeBlockChanges(start_at=utc(1, 10, 30))
        )
    assert exc_info.value.conflict.id == booked.id


@pytest.mark.asyncio
async def test_update_effective_span_must_be_positive(service, booked):
    """Test only end_at is sent but lands before the stored start."""
    with pytest.raises(ValidationError):
        await service.update_timeblock(booked.id, TimeBlockChanges(end_at=utc(1, 9)))


@pytest.mark.asyncio
async def test_update_rejects_null_for_required_field(service, booked):
    with pytest.raises(ValidationError):
        await service.update_timeblock(booked.id, TimeBlockChanges(start_at=None))


@pytest.mark.asyncio
async def test_update_null_clears_nullable_field(service, booked):
    """Test explicit None clears a field while UNSET leaves it alone."""
    updated = await service.update_timeblock(
        booked.id, TimeBlockChanges(title=None, notes="moved")
    )
    assert updated.title is None
    assert updated.notes == "moved"
    assert updated.status == TimeBlockStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_update_missing_block(service):
    with pytest.raises(NotFoundError):
        await service.update_timeblock(uuid4(), TimeBlockChanges(title="x"))


def test_changes_report_only_provided_fields():
    changes = TimeBlockChanges(title=None, notes="n")
    assert changes.provided() == {"title": None, "notes": "n"}
    assert changes.start_at is UNSET


# ==================== DELETE / LIST ====================


@pytest.mark.asyncio
async def test_delete_timeblock(service, booked):
    await service.delete_timeblock(booked.id)
    with pytest.raises(NotFoundError):
        await service.get_timeblock(booked.id)


@pytest.mark.asyncio
async def test_list_timeblocks_filters_by_range(service, test_user, booked):
    await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(2, 10),
        end_at=utc(2, 11),
    )

    day_one = await service.list_timeblocks(
        test_user.id, range_start=utc(1, 0), range_end=utc(2, 0)
    )
    everything = await service.list_timeblocks(test_user.id)

    assert [b.id for b in day_one] == [booked.id]
    assert len(everything) == 2
    assert everything[0].id == booked.id


# ==================== SUGGEST ====================


@pytest.mark.asyncio
async def test_suggest_books_first_open_slot(service, test_user, booked):
    """Test the suggestion lands before the 10:00 block and is tentative."""
    block = await service.suggest_timeblock(
        user_id=test_user.id,
        duration_minutes=60,
        window_start=utc(1, 8, 30),
        window_end=utc(2, 0),
        preferred_start_hour=9,
        preferred_end_hour=17,
    )

    assert block.start_at.replace(tzinfo=timezone.utc) == utc(1, 9)
    assert block.end_at.replace(tzinfo=timezone.utc) == utc(1, 10)
    assert block.status == TimeBlockStatus.TENTATIVE.value
    assert block.provider == CalendarProvider.LOCAL.value
    assert block.title == "Suggested block"


@pytest.mark.asyncio
async def test_suggest_uses_task_title(service, test_session, test_user):
    task = Task(user_id=test_user.id, title="Write report")
    test_session.add(task)
    await test_session.commit()

    block = await service.suggest_timeblock(
        user_id=test_user.id,
        task_id=task.id,
        window_start=utc(1, 9),
        window_end=utc(2, 0),
    )
    assert block.task_id == task.id
    assert block.title == "Write report"


@pytest.mark.asyncio
async def test_suggest_uses_users_timezone(service, test_session, test_user):
    test_user.timezone = "Asia/Tokyo"
    await test_session.commit()

    # 09:00 in Tokyo is 00:00 UTC
    block = await service.suggest_timeblock(
        user_id=test_user.id,
        duration_minutes=60,
        window_start=utc(1, 0),
        window_end=utc(2, 0),
        preferred_start_hour=9,
        preferred_end_hour=17,
    )
    assert block.start_at.replace(tzinfo=timezone.utc) == utc(1, 0)


@pytest.mark.asyncio
async def test_suggest_window_exhausted(service, test_user):
    await service.create_timeblock(
        user_id=test_user.id,
        start_at=utc(1, 9),
        end_at=utc(1, 17),
    )

    with pytest.raises(ConflictError) as exc_info:
        await service.suggest_timeblock(
            user_id=test_user.id,
            duration_minutes=60,
            window_start=utc(1, 9),
            window_end=utc(1, 17),
            preferred_start_hour=9,
            preferred_end_hour=17,
        )

    assert exc_info.value.window_exhausted is True
    assert exc_info.value.conflict is None
    assert exc_info.value.details["durationMinutes"] == 60


@pytest.mark.asyncio
async def test_suggest_rejects_inverted_hours(service, test_user):
    with pytest.raises(ValidationError):
        await service.suggest_timeblock(
            user_id=test_user.id,
            preferred_start_hour=17,
            preferred_end_hour=9,
        )


@pytest.mark.asyncio
async def test_suggest_rejects_unknown_timezone(service, test_user):
    with pytest.raises(ValidationError):
        await service.suggest_timeblock(
            user_id=test_user.id,
            window_start=utc(1, 9),
            window_end=utc(2, 0),
            timezone_name="Mars/Olympus_Mons",
        )


@pytest.mark.asyncio
async def test_suggest_rejects_unknown_channel(service, test_user, other_user, test_session):
    """Test a channel owned by another user is treated as missing."""
    channel = Channel(user_id=other_user.id, name="Theirs")
    test_session.add(channel)
    await test_session.commit()

    with pytest.raises(NotFoundError):
        await service.suggest_timeblock(
            user_id=test_user.id,
            channel_id=channel.id,
            window_start=utc(1, 9),
            window_end=utc(2, 0),
        )


# ==================== CONFLICT CHECKER ====================


@pytest.mark.asyncio
async def test_find_conflict_returns_earliest_overlap(test_session, test_user):
    test_session.add_all([
        TimeBlock(user_id=test_user.id, start_at=utc(1, 12), end_at=utc(1, 13)),
        TimeBlock(user_id=test_user.id, start_at=utc(1, 10), end_at=utc(1, 11)),
    ])
    await test_session.commit()

    checker = ConflictChecker(test_session)
    conflict = await checker.find_conflict(test_user.id, utc(1, 9), utc(1, 14))

    assert conflict.start_at.replace(tzinfo=timezone.utc) == utc(1, 10)


@pytest.mark.asyncio
async def test_find_conflict_none_when_free(test_session, test_user):
    checker = ConflictChecker(test_session)
    assert await checker.find_conflict(test_user.id, utc(1, 9), utc(1, 10)) is None


# ==================== STORE RACE ====================


@pytest.mark.asyncio
async def test_exclusion_violation_becomes_integrity_race():
    """Test the store rejecting a concurrent overlap surfaces as a retryable conflict."""
    db = MagicMock()
    db.commit = AsyncMock(side_effect=IntegrityError(
        "INSERT", {}, Exception(f'conflicting key value violates exclusion constraint "{OVERLAP_CONSTRAINT}"')
    ))
    db.rollback = AsyncMock()

    service = TimeBlockService(db)
    with pytest.raises(IntegrityRace) as exc_info:
        await service._commit()

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 409
    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_integrity_errors_propagate():
    db = MagicMock()
    db.commit = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("unique violation")))
    db.rollback = AsyncMock()

    service = TimeBlockService(db)
    with pytest.raises(IntegrityError):
        await service._commit()
