"""
Transitions - Stage Transition Policy

Pure stage arithmetic (no database calls).

A facet climbs one stage per pass. A fail drops it two stages but never
below stage 1, except that a brand-new facet (stage 0) simply stays at 0.
The next due time is derived from the stage just reached via INTERVAL_HOURS.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional

from aisrs.srs.constants import (
    INTERVAL_HOURS,
    MAX_STAGE,
    SRS_LEVELS,
    SRS_LEVEL_ORDER,
    ReviewOutcome,
)


def coerce_outcome(outcome: ReviewOutcome | str) -> ReviewOutcome:
    """Accept "pass"/"fail" strings as well as ReviewOutcome members."""
    try:
        return ReviewOutcome(outcome)
    except ValueError:
        raise ValueError(f"Outcome must be 'pass' or 'fail', got {outcome!r}") from None


def validate_stage(stage: int) -> int:
    if not 0 <= stage <= MAX_STAGE:
        raise ValueError(f"Stage {stage} outside 0..{MAX_STAGE}")
    return stage


def interval_for_stage(stage: int) -> timedelta:
    """Time until the next review once a facet has reached `stage`."""
    return timedelta(hours=INTERVAL_HOURS[validate_stage(stage)])


def next_stage(current: int, outcome: ReviewOutcome | str) -> int:
    """
    Compute the stage a facet moves to after a review.

    Args:
        current: Current stage (0..MAX_STAGE)
        outcome: pass or fail

    Returns:
        New stage, always within 0..MAX_STAGE
    """
    current = validate_stage(current)

    if coerce_outcome(outcome) is ReviewOutcome.PASS:
        return min(current + 1, MAX_STAGE)

    if current == 0:
        return 0
    return max(1, current - 2)


def compute_due_at(stage: int, now: Optional[datetime] = None) -> datetime:
    """Due time for a facet that reaches `stage` at `now`."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now + interval_for_stage(stage)


def srs_level_name(stage: int) -> str:
    """Progression level label for a stage (Sumi-suri .. Mushin)."""
    return SRS_LEVELS.get(stage, SRS_LEVEL_ORDER[0])


def srs_level_index(stage: int) -> int:
    """
    Numeric index (0-4) of the level a stage belongs to.

    0: Sumi-suri (stages 0-3)
    1: Kaisho (stages 4-5)
    2: Gyosho (stage 6)
    3: Sosho (stage 7)
    4: Mushin (stage 8)
    """
    return SRS_LEVEL_ORDER.index(srs_level_name(stage))
