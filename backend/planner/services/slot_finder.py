"""
First-fit open slot search.

Walks calendar days in the user's timezone, clamps each day to the preferred
working hours and the search window, then sweeps a cursor across the busy
blocks that fall inside that window. The earliest gap long enough for the
requested duration wins; block size and fragmentation are never optimized.
"""

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Sequence

from planner.services.intervals import HasSpan, Interval, as_utc


def find_first_open_slot(
    busy_blocks: Sequence[HasSpan],
    search_start: datetime,
    search_end: datetime,
    preferred_start_hour: int,
    preferred_end_hour: int,
    duration_minutes: int,
    tz: tzinfo = timezone.utc,
) -> Optional[Interval]:
    """
    Find the earliest [start, start + duration) that fits between busy blocks.

    Args:
        busy_blocks: Active (non-cancelled) intervals for one user, sorted
            ascending by start. Sorting and filtering are the caller's job.
        search_start: Earliest instant a slot may begin.
        search_end: Latest instant a slot may end.
        preferred_start_hour: Hour of day (in ``tz``) the working window opens.
        preferred_end_hour: Hour of day (in ``tz``) the working window closes.
        duration_minutes: Required slot length.
        tz: Timezone whose calendar days and hours define the daily window.

    Returns:
        The first fitting Interval (in UTC), or None if the window is exhausted.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    duration = timedelta(minutes=duration_minutes)
    day = search_start.astimezone(tz).date()
    last_day = search_end.astimezone(tz).date()

    # Blocks before this index end before every remaining window
    first = 0
    count = len(busy_blocks)

    while day <= last_day:
        day_open = datetime.combine(day, time(preferred_start_hour), tzinfo=tz)
        day_close = datetime.combine(day, time(preferred_end_hour), tzinfo=tz)

        # Sweep in UTC; wall-clock arithmetic in tz is wrong across DST changes
        window_start = as_utc(max(day_open, search_start))
        window_end = as_utc(min(day_close, search_end))

        if window_end > window_start:
            while first < count and busy_blocks[first].end <= window_start:
                first += 1

            cursor = window_start
            for block in busy_blocks[first:]:
                if block.start >= window_end:
                    break
                if block.end <= window_start:
                    continue

                if block.start - cursor >= duration:
                    return Interval(cursor, cursor + duration)

                cursor = max(cursor, as_utc(block.end))

            if window_end - cursor >= duration:
                return Interval(cursor, cursor + duration)

        day += timedelta(days=1)

    return None
