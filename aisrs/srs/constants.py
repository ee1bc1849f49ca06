"""
SRS Constants and Parameters

All configurable parameters for the stage-based scheduler in one place.
"""

import os
from enum import Enum
from zoneinfo import ZoneInfo


# ---- Review Outcomes ----

class ReviewOutcome(str, Enum):
    """Result of a single review attempt."""
    PASS = "pass"
    FAIL = "fail"


# ---- Facet Kinds ----

class FacetKind(str, Enum):
    """One reviewable aspect of a knowledge unit."""
    CONTENT_TO_DEFINITION = "Content-to-Definition"
    DEFINITION_TO_CONTENT = "Definition-to-Content"
    CONTENT_TO_READING = "Content-to-Reading"
    READING_TO_CONTENT = "Reading-to-Content"
    KANJI_COMPONENT_MEANING = "Kanji-Component-Meaning"  # e.g. 食 -> "eat"
    KANJI_COMPONENT_READING = "Kanji-Component-Reading"  # e.g. 食 -> ショク
    AI_GENERATED_QUESTION = "AI-Generated-Question"


# Facets that point at a component of the parent (a kanji inside a word)
COMPONENT_FACET_KINDS = frozenset({
    FacetKind.KANJI_COMPONENT_MEANING,
    FacetKind.KANJI_COMPONENT_READING,
})

# Reaching the final stage on one of these marks the parent fact mastered
MASTERY_FACET_KINDS = frozenset(FacetKind) - {FacetKind.AI_GENERATED_QUESTION}


# ---- Interval Table ----

MAX_STAGE = 8

# Hours until the next review, indexed by the stage just reached
INTERVAL_HOURS = {
    0: 10 / 60,  # 10 minutes (same-session re-drill)
    1: 8,
    2: 24,       # 1 day
    3: 72,       # 3 days
    4: 168,      # 1 week
    5: 336,      # 2 weeks
    6: 730,      # ~1 month
    7: 2920,     # ~4 months
    8: 8760,     # 1 year
}


# ---- SRS Levels ----

SRS_LEVELS = {
    0: "Sumi-suri",
    1: "Sumi-suri",
    2: "Sumi-suri",
    3: "Sumi-suri",
    4: "Kaisho",
    5: "Kaisho",
    6: "Gyosho",
    7: "Sosho",
    8: "Mushin",
}

SRS_LEVEL_ORDER = ["Sumi-suri", "Kaisho", "Gyosho", "Sosho", "Mushin"]


# ---- AI Question Recycling ----

QUESTION_REUSE_LIMIT = 3  # Regenerate once a question has been attempted this often


# ---- Transactions ----

MAX_TRANSACTION_ATTEMPTS = 5


# ---- Forecast ----

FORECAST_HOURS = 24
FORECAST_DAYS = 5

HOUR_BUCKET = "hour"
DAY_BUCKET = "day"


def get_forecast_timezone() -> ZoneInfo:
    """
    Timezone used for calendar bucket keys and streak day boundaries.

    Reads SRS_TIMEZONE (IANA name), defaulting to UTC.
    """
    return ZoneInfo(os.getenv("SRS_TIMEZONE", "UTC"))
