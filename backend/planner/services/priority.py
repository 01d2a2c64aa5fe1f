"""Deterministic task priority score used to order tasks for scheduling."""

from typing import Optional

IMPORTANCE_WEIGHT = 0.6
URGENCY_WEIGHT = 0.4


def compute_priority_score(
    importance: Optional[float] = None,
    urgency: Optional[float] = None,
) -> Optional[float]:
    """
    Weighted sum of importance and urgency, rounded to two decimals.

    Returns None when either input is missing; callers then keep whatever
    score was stored before.
    """
    if importance is None or urgency is None:
        return None

    return round(float(importance) * IMPORTANCE_WEIGHT + float(urgency) * URGENCY_WEIGHT, 2)
