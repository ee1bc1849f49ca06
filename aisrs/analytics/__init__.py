"""
Analytics package exports.
"""

from aisrs.analytics.constants import LEVEL_LABELS
from aisrs.analytics.service import build_review_dashboard
from aisrs.analytics.types import ReviewDashboardData

__all__ = [
    "LEVEL_LABELS",
    "build_review_dashboard",
    "ReviewDashboardData",
]
