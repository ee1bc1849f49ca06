"""
Metric computations for the review dashboard.
"""

from __future__ import annotations

import pandas as pd

from aisrs.analytics.constants import LEVEL_LABELS
from aisrs.srs.transitions import srs_level_name


def build_day_index(events_df: pd.DataFrame) -> pd.DatetimeIndex:
    """
    Build a dense UTC day index spanning the event range.
    """
    if events_df.empty:
        return pd.DatetimeIndex([], tz="UTC")
    start = events_df["day_utc"].min()
    end = events_df["day_utc"].max()
    return pd.date_range(start=start, end=end, freq="D")


def compute_passed(events_df: pd.DataFrame) -> int:
    if events_df.empty:
        return 0
    return int((events_df["outcome"] == "pass").sum())


def compute_accuracy(events_df: pd.DataFrame) -> float:
    """
    Share of passed reviews, 0.0 when there are none.
    """
    if events_df.empty:
        return 0.0
    return compute_passed(events_df) / len(events_df)


def compute_facets_reviewed(events_df: pd.DataFrame) -> int:
    """
    Count unique facets with at least one review.
    """
    if events_df.empty:
        return 0
    return int(events_df["facet_id"].nunique())


def compute_reviews_daily(events_df: pd.DataFrame, day_index: pd.DatetimeIndex) -> pd.Series:
    """
    Number of reviews per day, zero on days without reviews.
    """
    if events_df.empty or len(day_index) == 0:
        return pd.Series(dtype="int64")
    daily = events_df.groupby("day_utc").size()
    return daily.reindex(day_index, fill_value=0).astype("int64")


def compute_accuracy_daily(events_df: pd.DataFrame, day_index: pd.DatetimeIndex) -> pd.Series:
    """
    Pass rate per day; NaN on days without reviews.
    """
    if events_df.empty or len(day_index) == 0:
        return pd.Series(dtype="float64")
    passed = (events_df["outcome"] == "pass").astype("float64")
    daily = passed.groupby(events_df["day_utc"]).mean()
    return daily.reindex(day_index).astype("float64")


def compute_facets_by_level(facets_df: pd.DataFrame) -> pd.Series:
    """
    Facet count per SRS level, in level order (all levels present).
    """
    if facets_df.empty:
        return pd.Series(0, index=LEVEL_LABELS, dtype="int64")
    levels = facets_df["stage"].astype(int).map(srs_level_name)
    return levels.value_counts().reindex(LEVEL_LABELS, fill_value=0).astype("int64")
