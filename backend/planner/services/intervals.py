"""
Interval primitives shared by conflict checking, slot finding and sync.

All intervals are half-open: [start, end). Two blocks that touch end-to-start
do not overlap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol


class HasSpan(Protocol):
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Interval:
    """A [start, end) time span. Construction rejects empty or inverted spans."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Interval end {self.end} must be after start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @classmethod
    def of_block(cls, block) -> "Interval":
        """Build an interval from a TimeBlock row (start_at/end_at columns)."""
        return cls(as_utc(block.start_at), as_utc(block.end_at))


def overlaps(a: HasSpan, b: HasSpan) -> bool:
    """True iff the half-open intervals a and b share at least one instant."""
    return a.start < b.end and a.end > b.start


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive values are treated as UTC; some drivers (SQLite) drop the offset
    on read even for DateTime(timezone=True) columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
