"""
Forecast - Bucket accounting, streak and accuracy

Keeps each owner's hourly/daily forecast counters in step with the due
times of their facets. Every facet sits in exactly one hourly and one
daily bucket: it is placed there when created and moved on every review.

Main workflow (inside the caller's transaction):
1. Compute bucket keys for the old and new due time
2. Take the facet out of the old buckets (clamped at zero)
3. Put it into the new buckets
4. Update streak and accuracy counters
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Iterable, Optional

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from aisrs.srs.buckets import ForecastBucketStore, bucket_keys, day_of, hour_keys
from aisrs.srs.clock import Clock, utc_now
from aisrs.srs.constants import (
    DAY_BUCKET,
    FORECAST_DAYS,
    FORECAST_HOURS,
    HOUR_BUCKET,
    ReviewOutcome,
    get_forecast_timezone,
)
from aisrs.srs.database import Transaction, get_session, run_in_transaction
from aisrs.srs.models import OwnerStats, ReviewFacet
from aisrs.srs.transitions import coerce_outcome


@dataclass(frozen=True)
class ForecastDay:
    """One row of the upcoming-days forecast."""
    date: date
    label: str        # Short weekday name, e.g. "Mon"
    added: int        # Facets falling due that day
    cumulative: int   # Due now plus everything added up to and including this day


@dataclass(frozen=True)
class Forecast:
    """Review forecast for one owner."""
    due_now: int
    next_24_hours: int
    days: list[ForecastDay]
    streak: int
    total_reviews: int
    passed_reviews: int

    @property
    def accuracy(self) -> float:
        if self.total_reviews == 0:
            return 0.0
        return self.passed_reviews / self.total_reviews


def count_due(session: Session, owner_id: str, now: datetime) -> int:
    """Live count of an owner's facets due at or before `now`."""
    return session.scalar(
        select(func.count()).select_from(ReviewFacet).where(
            ReviewFacet.owner_id == owner_id,
            ReviewFacet.due_at <= now,
        )
    )


def advance_streak(stats: OwnerStats, now: datetime, tz: tzinfo) -> int:
    """
    Update the consecutive-day streak for a review at `now`.

    - First review ever: 1
    - Already reviewed today: unchanged
    - Last review yesterday: +1
    - Otherwise: streak broken, back to 1
    """
    today = day_of(now, tz)

    if stats.last_review_at is None:
        stats.streak = 1
    else:
        last_day = day_of(stats.last_review_at, tz)
        if last_day == today:
            pass
        elif last_day == today - timedelta(days=1):
            stats.streak += 1
        else:
            stats.streak = 1

    stats.last_review_at = now
    return stats.streak


def current_streak(stats: Optional[OwnerStats], now: datetime, tz: tzinfo) -> int:
    """Streak as it stands at `now`: zero once a whole day has been missed."""
    if stats is None or stats.last_review_at is None:
        return 0
    last_day = day_of(stats.last_review_at, tz)
    if last_day >= day_of(now, tz) - timedelta(days=1):
        return stats.streak
    return 0


class ForecastStatsTracker:
    """
    Moves facets between forecast buckets and maintains streak/accuracy.

    The write methods take the caller's open session so the bucket changes
    commit (or roll back) together with the facet change.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        tz: Optional[tzinfo] = None,
        session_factory: Optional[Callable[[], Session]] = None
    ):
        self.clock = clock
        self._tz = tz
        self.session_factory = session_factory or get_session

    @property
    def tz(self) -> tzinfo:
        return self._tz or get_forecast_timezone()

    # ---- Writes (caller's transaction) ----

    def place(self, session: Session, owner_id: str, due_ats: Iterable[datetime]) -> None:
        """Add newly created facets to the buckets of their due times."""
        store = ForecastBucketStore(session, owner_id)
        store.stats()  # stats row exists from the first facet on
        hours: Counter = Counter()
        days: Counter = Counter()
        for due_at in due_ats:
            keys = bucket_keys(due_at, self.tz)
            hours[keys.hour_key] += 1
            days[keys.day_key] += 1
        store.apply(HOUR_BUCKET, hours)
        store.apply(DAY_BUCKET, days)
        session.flush()

    def reschedule(
        self,
        session: Session,
        owner_id: str,
        old_due_at: datetime,
        new_due_at: datetime,
        outcome: ReviewOutcome | str,
        now: Optional[datetime] = None
    ) -> OwnerStats:
        """
        Record one review: move the facet's bucket membership from
        `old_due_at` to `new_due_at` and update streak/accuracy.

        Moving within the same bucket leaves the counts untouched.

        Returns:
            The owner's updated stats row
        """
        outcome = coerce_outcome(outcome)
        if now is None:
            now = self.clock()

        store = ForecastBucketStore(session, owner_id)
        # Stats row first: its version is the one every same-owner review bumps
        stats = store.stats()

        old_keys = bucket_keys(old_due_at, self.tz)
        new_keys = bucket_keys(new_due_at, self.tz)

        hours: Counter = Counter()
        hours[old_keys.hour_key] -= 1
        hours[new_keys.hour_key] += 1
        days: Counter = Counter()
        days[old_keys.day_key] -= 1
        days[new_keys.day_key] += 1

        store.apply(HOUR_BUCKET, hours)
        store.apply(DAY_BUCKET, days)

        advance_streak(stats, now, self.tz)
        stats.total_reviews += 1
        if outcome is ReviewOutcome.PASS:
            stats.passed_reviews += 1

        logger.debug(
            f"[FORECAST] {owner_id}: {old_keys.hour_key} -> {new_keys.hour_key}, "
            f"streak={stats.streak}, reviews={stats.passed_reviews}/{stats.total_reviews}"
        )
        session.flush()
        return stats

    # ---- Reads ----

    def get_forecast(self, owner_id: str, now: Optional[datetime] = None) -> Forecast:
        """
        Build the review forecast: due now, next 24 hours, next 5 days, streak.

        Read-only; runs outside any transaction.
        """
        if now is None:
            now = self.clock()

        session = self.session_factory()
        try:
            store = ForecastBucketStore(session, owner_id)
            due_now = count_due(session, owner_id, now)

            hourly = store.counts(HOUR_BUCKET, hour_keys(now, FORECAST_HOURS, self.tz))
            next_24_hours = sum(hourly.values())

            today = day_of(now, self.tz)
            dates = [today + timedelta(days=i) for i in range(FORECAST_DAYS)]
            daily = store.counts(DAY_BUCKET, [d.isoformat() for d in dates])

            days = []
            cumulative = due_now
            for d in dates:
                added = daily[d.isoformat()]
                cumulative += added
                days.append(ForecastDay(
                    date=d,
                    label=d.strftime("%a"),
                    added=added,
                    cumulative=cumulative
                ))

            stats = store.stats(create=False)
            return Forecast(
                due_now=due_now,
                next_24_hours=next_24_hours,
                days=days,
                streak=current_streak(stats, now, self.tz),
                total_reviews=stats.total_reviews if stats else 0,
                passed_reviews=stats.passed_reviews if stats else 0
            )
        finally:
            session.close()

    # ---- Maintenance ----

    def rebuild(self, owner_id: str) -> int:
        """
        Recompute every bucket of an owner from the facets' due times.

        Returns:
            Number of facets placed
        """
        def work(tx: Transaction) -> int:
            store = ForecastBucketStore(tx.session, owner_id)
            store.clear()
            due_ats = tx.session.scalars(
                select(ReviewFacet.due_at).where(ReviewFacet.owner_id == owner_id)
            ).all()
            self.place(tx.session, owner_id, due_ats)
            return len(due_ats)

        placed = run_in_transaction(work, self.session_factory, label=f"rebuild forecast {owner_id}")
        logger.info(f"[FORECAST] Rebuilt forecast for {owner_id} from {placed} facets")
        return placed

    def prune(self, owner_id: str, before: datetime) -> int:
        """
        Delete buckets for calendar days that ended before `before`.

        Returns:
            Number of bucket rows removed
        """
        cutoff = bucket_keys(before, self.tz).day_key

        def work(tx: Transaction) -> int:
            return ForecastBucketStore(tx.session, owner_id).prune(cutoff)

        removed = run_in_transaction(work, self.session_factory, label=f"prune forecast {owner_id}")
        logger.info(f"[FORECAST] Pruned {removed} buckets before {cutoff} for {owner_id}")
        return removed
