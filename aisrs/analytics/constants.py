"""
Constants for the review dashboard.
"""

from __future__ import annotations

from typing import Final

from aisrs.srs.constants import SRS_LEVEL_ORDER


EVENT_COLUMNS: Final[list[str]] = ["facet_id", "timestamp", "outcome", "resulting_stage", "day_utc"]
FACET_COLUMNS: Final[list[str]] = ["facet_id", "facet_kind", "stage"]

LEVEL_LABELS: Final[list[str]] = list(SRS_LEVEL_ORDER)
