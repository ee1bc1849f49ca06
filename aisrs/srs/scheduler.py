"""
SRS Scheduler - One review event, end to end

Main workflow for a single pass/fail result:
1. Read the facet and remember its old due time
2. Compute the new stage and due time (transitions module)
3. Move the facet between forecast buckets and update streak/accuracy
4. Append the history entry and write stage/due time
5. After commit, tell the fact store when a fact reached the final stage

Steps 1-4 run in one transaction and retry together on conflict.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from aisrs.srs.clock import Clock, utc_now
from aisrs.srs.collaborators import FactStore
from aisrs.srs.constants import MASTERY_FACET_KINDS, MAX_STAGE, FacetKind, ReviewOutcome
from aisrs.srs.database import Transaction, get_session, run_in_transaction
from aisrs.srs.facets import load_facet
from aisrs.srs.forecast import ForecastStatsTracker
from aisrs.srs.models import ReviewEvent
from aisrs.srs.transitions import coerce_outcome, compute_due_at, next_stage


@dataclass(frozen=True)
class ReviewResult:
    """Outcome of recording one review."""
    facet_id: str
    fact_id: str
    facet_kind: str
    previous_stage: int
    new_stage: int
    next_review_at: datetime

    @property
    def mastered(self) -> bool:
        return self.new_stage == MAX_STAGE


class SrsScheduler:
    """
    Records review outcomes against review facets.
    """

    def __init__(
        self,
        fact_store: Optional[FactStore] = None,
        tracker: Optional[ForecastStatsTracker] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Clock = utc_now
    ):
        self.fact_store = fact_store
        self.session_factory = session_factory or get_session
        self.clock = clock
        self.tracker = tracker or ForecastStatsTracker(clock=clock, session_factory=self.session_factory)

    def record_outcome(
        self,
        owner_id: str,
        facet_id: str,
        outcome: ReviewOutcome | str
    ) -> ReviewResult:
        """
        Apply a pass/fail result to a facet.

        Args:
            owner_id: Learner the facet must belong to
            facet_id: Facet being reviewed
            outcome: "pass" or "fail"

        Returns:
            ReviewResult with the new stage and next review time

        Raises:
            NotFoundError: Facet missing or owned by someone else
            ConflictError: Concurrent reviews kept conflicting
        """
        outcome = coerce_outcome(outcome)

        def work(tx: Transaction) -> ReviewResult:
            now = self.clock()
            facet = load_facet(tx.session, owner_id, facet_id)

            old_stage = facet.stage
            old_due_at = facet.due_at
            new_stage = next_stage(old_stage, outcome)
            new_due_at = compute_due_at(new_stage, now)

            self.tracker.reschedule(tx.session, owner_id, old_due_at, new_due_at, outcome, now=now)

            facet.history.append(ReviewEvent(
                owner_id=owner_id,
                timestamp=now,
                outcome=outcome.value,
                stage_before=old_stage,
                resulting_stage=new_stage
            ))
            facet.stage = new_stage
            facet.due_at = new_due_at
            facet.last_reviewed_at = now
            tx.session.flush()

            return ReviewResult(
                facet_id=facet.id,
                fact_id=facet.fact_id,
                facet_kind=facet.facet_kind,
                previous_stage=old_stage,
                new_stage=new_stage,
                next_review_at=new_due_at
            )

        result = run_in_transaction(work, self.session_factory, label=f"review {facet_id}")
        logger.info(
            f"[SRS] {facet_id}: {outcome.value}, stage {result.previous_stage} -> {result.new_stage}, "
            f"next review {result.next_review_at.isoformat()}"
        )

        if result.mastered and FacetKind(result.facet_kind) in MASTERY_FACET_KINDS:
            self._mark_mastered(owner_id, result.fact_id)
        return result

    def _mark_mastered(self, owner_id: str, fact_id: str) -> None:
        """Best-effort: the review is already committed."""
        if self.fact_store is None:
            return
        try:
            self.fact_store.mark_mastered(owner_id, fact_id)
            logger.info(f"[SRS] Marked {fact_id} as mastered")
        except Exception as e:
            logger.warning(f"[SRS] Could not mark {fact_id} as mastered: {e}")
