"""
Types for analytics dashboards.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


@dataclass(frozen=True)
class ReviewDashboardData:
    """
    Precomputed metrics and series for one owner's review history.
    """
    owner_id: str
    total_reviews: int
    passed_reviews: int
    accuracy: float
    facets_reviewed: int
    reviews_daily: pd.Series
    accuracy_daily: pd.Series
    facets_by_level: pd.Series
