"""
SRS - Stage-based spaced repetition scheduling

Main API for the review engine.

Each learnable fact owns one or more review facets. A facet climbs a stage
ladder (0-8) on every pass and drops back on a fail; its due time is always
derived from the stage it just reached. Per-owner hourly/daily forecast
buckets, streak and accuracy counters are updated in the same transaction
as the facet.

Quick start:
    from aisrs import srs

    # Initialize database
    srs.init_db()

    # Start learning a fact
    store = srs.ReviewFacetStore(fact_store)
    store.create_facets(owner_id, fact_id, ["Content-to-Definition"])

    # Review queue and one review
    items = srs.DueReviewAssembler(fact_store).get_due_reviews(owner_id)
    result = srs.SrsScheduler(fact_store).record_outcome(owner_id, facet_id, "pass")

    # Forecast
    forecast = srs.ForecastStatsTracker().get_forecast(owner_id)
"""

# Stage transition policy
from aisrs.srs.transitions import (
    next_stage,
    compute_due_at,
    interval_for_stage,
    srs_level_name,
    srs_level_index
)

# Services
from aisrs.srs.scheduler import SrsScheduler, ReviewResult
from aisrs.srs.facets import ReviewFacetStore, FacetRequest, FacetSnapshot, HistoryEntry, get_review_events
from aisrs.srs.forecast import ForecastStatsTracker, Forecast, ForecastDay
from aisrs.srs.buckets import ForecastBucketStore, bucket_keys
from aisrs.srs.due_reviews import DueReviewAssembler, ReviewItem
from aisrs.srs.questions import QuestionRecycler, ResolvedQuestion, StoredQuestion, evaluate_answer
from aisrs.srs.jobs import WorkItem, ItemResult, BatchReport, prefetch_questions

# Database API
from aisrs.srs.database import (
    init_db,
    reset_db,
    is_test_mode,
    get_session,
    configure_engine,
    run_in_transaction
)

# Constants and errors
from aisrs.srs.constants import (
    ReviewOutcome,
    FacetKind,
    MAX_STAGE,
    INTERVAL_HOURS,
    QUESTION_REUSE_LIMIT
)
from aisrs.srs.errors import SrsError, NotFoundError, ConflictError, UpstreamGenerationError


__all__ = [
    # Transition policy
    "next_stage",
    "compute_due_at",
    "interval_for_stage",
    "srs_level_name",
    "srs_level_index",

    # Services
    "SrsScheduler",
    "ReviewResult",
    "ReviewFacetStore",
    "FacetRequest",
    "FacetSnapshot",
    "HistoryEntry",
    "get_review_events",
    "ForecastStatsTracker",
    "Forecast",
    "ForecastDay",
    "ForecastBucketStore",
    "bucket_keys",
    "DueReviewAssembler",
    "ReviewItem",
    "QuestionRecycler",
    "ResolvedQuestion",
    "StoredQuestion",
    "evaluate_answer",
    "WorkItem",
    "ItemResult",
    "BatchReport",
    "prefetch_questions",

    # Database operations
    "init_db",
    "reset_db",
    "is_test_mode",
    "get_session",
    "configure_engine",
    "run_in_transaction",

    # Enums and parameters
    "ReviewOutcome",
    "FacetKind",
    "MAX_STAGE",
    "INTERVAL_HOURS",
    "QUESTION_REUSE_LIMIT",

    # Errors
    "SrsError",
    "NotFoundError",
    "ConflictError",
    "UpstreamGenerationError",
]
