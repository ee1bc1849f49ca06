"""
Forecast Buckets - Per-owner calendar counters

Typed view over the forecast_buckets and owner_stats tables for a single
owner inside an open transaction. Absent buckets read as zero and
decrements clamp at zero.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Optional

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from aisrs.srs.constants import get_forecast_timezone
from aisrs.srs.models import ForecastBucket, OwnerStats


@dataclass(frozen=True)
class BucketKeys:
    """Hourly and daily bucket a moment falls into."""
    day_key: str   # YYYY-MM-DD
    hour_key: str  # YYYY-MM-DD-HH


def bucket_keys(moment: datetime, tz: Optional[tzinfo] = None) -> BucketKeys:
    """Calendar bucket keys for `moment`, in the forecast timezone."""
    local = moment.astimezone(tz or get_forecast_timezone())
    day_key = local.strftime("%Y-%m-%d")
    return BucketKeys(day_key=day_key, hour_key=f"{day_key}-{local.hour:02d}")


def hour_keys(start: datetime, hours: int, tz: Optional[tzinfo] = None) -> list[str]:
    """Consecutive hourly keys starting with the hour containing `start`."""
    return [bucket_keys(start + timedelta(hours=i), tz).hour_key for i in range(hours)]


def day_of(moment: datetime, tz: Optional[tzinfo] = None):
    """Calendar date of `moment` in the forecast timezone."""
    return moment.astimezone(tz or get_forecast_timezone()).date()


class ForecastBucketStore:
    """
    Forecast counters and streak/accuracy stats for one owner.

    Rows are loaded lazily and cached for the life of the store, so
    repeated changes to one bucket within a transaction accumulate.
    """

    def __init__(self, session: Session, owner_id: str):
        self.session = session
        self.owner_id = owner_id
        self._buckets: dict[tuple[str, str], Optional[ForecastBucket]] = {}
        self._stats: Optional[OwnerStats] = None

    # ---- Buckets ----

    def _row(self, granularity: str, key: str) -> Optional[ForecastBucket]:
        cache_key = (granularity, key)
        if cache_key not in self._buckets:
            self._buckets[cache_key] = self.session.get(
                ForecastBucket, (self.owner_id, granularity, key)
            )
        return self._buckets[cache_key]

    def count(self, granularity: str, key: str) -> int:
        row = self._row(granularity, key)
        return row.count if row is not None else 0

    def increment(self, granularity: str, key: str, amount: int = 1) -> int:
        """Add `amount` to a bucket, creating it at zero if absent."""
        row = self._row(granularity, key)
        if row is None:
            row = ForecastBucket(
                owner_id=self.owner_id,
                granularity=granularity,
                bucket_key=key,
                count=0
            )
            self.session.add(row)
            self._buckets[(granularity, key)] = row
        row.count += amount
        return row.count

    def decrement(self, granularity: str, key: str, amount: int = 1) -> int:
        """
        Subtract `amount` from a bucket, clamping at zero.

        A missing or short bucket is a data-quality issue; it is logged,
        not raised.
        """
        row = self._row(granularity, key)
        current = row.count if row is not None else 0
        if current < amount:
            logger.warning(
                f"[FORECAST] Clamping {granularity} bucket {key} for {self.owner_id}: "
                f"has {current}, asked to remove {amount}"
            )
        if row is None:
            return 0
        row.count = max(0, current - amount)
        return row.count

    def apply(self, granularity: str, deltas: dict[str, int]) -> None:
        """Apply net per-key changes; zero deltas touch nothing."""
        for key, delta in deltas.items():
            if delta > 0:
                self.increment(granularity, key, delta)
            elif delta < 0:
                self.decrement(granularity, key, -delta)

    def counts(self, granularity: str, keys: Iterable[str]) -> dict[str, int]:
        """Counts for `keys`, absent buckets reported as zero."""
        keys = list(keys)
        rows = self.session.scalars(
            select(ForecastBucket).where(
                ForecastBucket.owner_id == self.owner_id,
                ForecastBucket.granularity == granularity,
                ForecastBucket.bucket_key.in_(keys),
            )
        ).all()
        found = {row.bucket_key: row.count for row in rows}
        return {key: found.get(key, 0) for key in keys}

    def all_counts(self, granularity: str) -> dict[str, int]:
        rows = self.session.scalars(
            select(ForecastBucket).where(
                ForecastBucket.owner_id == self.owner_id,
                ForecastBucket.granularity == granularity,
            )
        ).all()
        return {row.bucket_key: row.count for row in rows}

    def clear(self) -> None:
        """Delete every bucket row of this owner."""
        self.session.execute(
            delete(ForecastBucket).where(ForecastBucket.owner_id == self.owner_id)
        )
        self._buckets.clear()

    def prune(self, day_key_cutoff: str) -> int:
        """
        Delete buckets for days before `day_key_cutoff` (YYYY-MM-DD).

        Hour keys share the day prefix, so string comparison on the first
        ten characters orders both granularities.
        """
        rows = self.session.scalars(
            select(ForecastBucket).where(ForecastBucket.owner_id == self.owner_id)
        ).all()
        removed = 0
        for row in rows:
            if row.bucket_key[:10] < day_key_cutoff:
                self.session.delete(row)
                self._buckets.pop((row.granularity, row.bucket_key), None)
                removed += 1
        return removed

    # ---- Stats ----

    def stats(self, create: bool = True) -> Optional[OwnerStats]:
        """Owner's streak/accuracy row, created empty on first use."""
        if self._stats is None:
            self._stats = self.session.get(OwnerStats, self.owner_id)
            if self._stats is None and create:
                self._stats = OwnerStats(
                    owner_id=self.owner_id,
                    streak=0,
                    last_review_at=None,
                    total_reviews=0,
                    passed_reviews=0
                )
                self.session.add(self._stats)
        return self._stats
