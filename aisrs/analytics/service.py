"""
Service layer to assemble the review dashboard.
"""

from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.orm import Session

from aisrs.analytics.metrics import (
    build_day_index,
    compute_accuracy,
    compute_accuracy_daily,
    compute_facets_by_level,
    compute_facets_reviewed,
    compute_passed,
    compute_reviews_daily,
)
from aisrs.analytics.queries import load_facets_df, load_review_events_df
from aisrs.analytics.types import ReviewDashboardData


def build_review_dashboard(
    owner_id: str,
    session_factory: Optional[Callable[[], Session]] = None
) -> ReviewDashboardData:
    """
    Build all KPI values and series for an owner's review dashboard.
    """
    events_df = load_review_events_df(owner_id, session_factory=session_factory)
    facets_df = load_facets_df(owner_id, session_factory=session_factory)
    day_index = build_day_index(events_df)

    return ReviewDashboardData(
        owner_id=owner_id,
        total_reviews=len(events_df),
        passed_reviews=compute_passed(events_df),
        accuracy=compute_accuracy(events_df),
        facets_reviewed=compute_facets_reviewed(events_df),
        reviews_daily=compute_reviews_daily(events_df, day_index),
        accuracy_daily=compute_accuracy_daily(events_df, day_index),
        facets_by_level=compute_facets_by_level(facets_df),
    )
