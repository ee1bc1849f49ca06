"""
Review Facets - Per-fact scheduling records

Creates facets and reads them back as immutable snapshots. Stage and due
time are only ever written by the scheduler; this module writes them once,
at creation (stage 0, due immediately).
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from aisrs.srs.clock import Clock, utc_now
from aisrs.srs.collaborators import FactStore
from aisrs.srs.constants import COMPONENT_FACET_KINDS, FacetKind
from aisrs.srs.database import Transaction, get_session, run_in_transaction
from aisrs.srs.errors import NotFoundError
from aisrs.srs.forecast import ForecastStatsTracker, count_due
from aisrs.srs.models import ReviewEvent, ReviewFacet
from aisrs.srs.transitions import srs_level_name


# ---- Snapshots ----

@dataclass(frozen=True)
class HistoryEntry:
    """One completed review of a facet."""
    timestamp: datetime
    outcome: str
    resulting_stage: int


@dataclass(frozen=True)
class FacetSnapshot:
    """Read-only view of a ReviewFacet row."""
    id: str
    owner_id: str
    fact_id: str
    facet_kind: str
    stage: int
    due_at: datetime
    last_reviewed_at: Optional[datetime]
    created_at: datetime
    current_question_id: Optional[str] = None
    question_attempts: int = 0
    history: tuple[HistoryEntry, ...] = ()

    @property
    def srs_level(self) -> str:
        return srs_level_name(self.stage)


@dataclass
class FacetRequest:
    """
    One facet to create for a fact.

    Kanji component kinds need `component` (e.g. "食"): the facet is then
    attached to that component's own fact instead of the parent.
    """
    kind: FacetKind
    component: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: FacetRequest | FacetKind | str) -> FacetRequest:
        if isinstance(value, FacetRequest):
            request = value
        else:
            request = cls(kind=value)
        try:
            request.kind = FacetKind(request.kind)
        except ValueError:
            raise ValueError(f"Unknown facet kind: {request.kind!r}") from None
        if request.kind in COMPONENT_FACET_KINDS and not request.component:
            raise ValueError(f"{request.kind.value} facets need a component identifier")
        return request


def to_snapshot(facet: ReviewFacet, with_history: bool = True) -> FacetSnapshot:
    history = ()
    if with_history:
        history = tuple(
            HistoryEntry(
                timestamp=event.timestamp,
                outcome=event.outcome,
                resulting_stage=event.resulting_stage
            )
            for event in facet.history
        )
    return FacetSnapshot(
        id=facet.id,
        owner_id=facet.owner_id,
        fact_id=facet.fact_id,
        facet_kind=facet.facet_kind,
        stage=facet.stage,
        due_at=facet.due_at,
        last_reviewed_at=facet.last_reviewed_at,
        created_at=facet.created_at,
        current_question_id=facet.current_question_id,
        question_attempts=facet.question_attempts,
        history=history
    )


# ---- Queries ----

def load_facet(session: Session, owner_id: str, facet_id: str) -> ReviewFacet:
    """
    Load a facet row, raising NotFoundError if it is missing or owned by
    someone else.
    """
    facet = session.get(ReviewFacet, facet_id)
    if facet is None or facet.owner_id != owner_id:
        raise NotFoundError(f"Review facet {facet_id} not found")
    return facet


def query_due(session: Session, owner_id: str, now: datetime) -> list[ReviewFacet]:
    """Facets due at or before `now`, earliest first (ties by id)."""
    return session.scalars(
        select(ReviewFacet)
        .where(ReviewFacet.owner_id == owner_id, ReviewFacet.due_at <= now)
        .order_by(ReviewFacet.due_at.asc(), ReviewFacet.id.asc())
    ).all()


def get_review_events(owner_id: str, session_factory: Optional[Callable[[], Session]] = None) -> list[ReviewEvent]:
    """
    All review events of an owner, oldest first.

    Args:
        owner_id: Owner whose history to load
        session_factory: Session source (defaults to get_session)

    Returns:
        List of detached ReviewEvent rows
    """
    session = (session_factory or get_session)()
    try:
        return session.scalars(
            select(ReviewEvent)
            .where(ReviewEvent.owner_id == owner_id)
            .order_by(ReviewEvent.timestamp.asc(), ReviewEvent.id.asc())
        ).all()
    finally:
        session.close()


# ---- Store ----

class ReviewFacetStore:
    """
    Creates review facets and serves read access to them.
    """

    def __init__(
        self,
        fact_store: FactStore,
        tracker: Optional[ForecastStatsTracker] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Clock = utc_now
    ):
        self.fact_store = fact_store
        self.session_factory = session_factory or get_session
        self.clock = clock
        self.tracker = tracker or ForecastStatsTracker(clock=clock, session_factory=self.session_factory)

    def create_facets(
        self,
        owner_id: str,
        fact_id: str,
        facet_kinds: Iterable[FacetRequest | FacetKind | str]
    ) -> int:
        """
        Start learning a fact: create its facets at stage 0, due now.

        All facets, their forecast buckets and the facet counters of the
        facts involved are written as one batch. Component facets are
        attached to a stub fact for the component, created if needed.

        Args:
            owner_id: Learner
            fact_id: Parent fact
            facet_kinds: Kinds to create (FacetKind, its string value, or FacetRequest)

        Returns:
            Number of facets created
        """
        if not owner_id:
            raise ValueError("owner_id is required")
        requests = [FacetRequest.coerce(kind) for kind in facet_kinds]
        if not requests:
            return 0

        self.fact_store.get_fact(owner_id, fact_id)

        # Stub facts live in the fact store; resolve them before the transaction
        targets = []
        for request in requests:
            if request.kind in COMPONENT_FACET_KINDS:
                metadata = {"parent_fact_id": fact_id, **request.metadata}
                targets.append(self.fact_store.ensure_stub(owner_id, request.component, metadata))
            else:
                targets.append(fact_id)

        per_fact: dict[str, int] = {}
        for target in targets:
            per_fact[target] = per_fact.get(target, 0) + 1

        def work(tx: Transaction) -> int:
            now = self.clock()
            for request, target in zip(requests, targets):
                tx.session.add(ReviewFacet(
                    id=str(uuid.uuid4()),
                    owner_id=owner_id,
                    fact_id=target,
                    facet_kind=request.kind.value,
                    stage=0,
                    due_at=now,
                    last_reviewed_at=None,
                    created_at=now,
                    current_question_id=None,
                    question_attempts=0
                ))
            self.tracker.place(tx.session, owner_id, [now] * len(requests))
            tx.session.flush()

            # Counter increments go last; undone if the commit does not happen
            for target, count in per_fact.items():
                self.fact_store.add_facets(owner_id, target, count)
                tx.on_rollback(
                    lambda target=target, count=count: self.fact_store.add_facets(owner_id, target, -count)
                )
            return len(requests)

        created = run_in_transaction(work, self.session_factory, label=f"create facets {fact_id}")
        logger.info(f"[SRS] Created {created} facets for {fact_id} ({owner_id})")
        return created

    def get_facet(self, owner_id: str, facet_id: str) -> FacetSnapshot:
        session = self.session_factory()
        try:
            return to_snapshot(load_facet(session, owner_id, facet_id))
        finally:
            session.close()

    def list_facets(self, owner_id: str, fact_id: Optional[str] = None) -> list[FacetSnapshot]:
        """All of an owner's facets (optionally for one fact), earliest due first."""
        session = self.session_factory()
        try:
            query = select(ReviewFacet).where(ReviewFacet.owner_id == owner_id)
            if fact_id is not None:
                query = query.where(ReviewFacet.fact_id == fact_id)
            facets = session.scalars(
                query.order_by(ReviewFacet.due_at.asc(), ReviewFacet.id.asc())
            ).all()
            return [to_snapshot(facet) for facet in facets]
        finally:
            session.close()

    def due_facets(self, owner_id: str, now: Optional[datetime] = None) -> list[FacetSnapshot]:
        """Snapshot of the facets due at `now`, earliest first."""
        if now is None:
            now = self.clock()
        session = self.session_factory()
        try:
            return [to_snapshot(facet, with_history=False) for facet in query_due(session, owner_id, now)]
        finally:
            session.close()

    def count_due(self, owner_id: str, now: Optional[datetime] = None) -> int:
        if now is None:
            now = self.clock()
        session = self.session_factory()
        try:
            return count_due(session, owner_id, now)
        finally:
            session.close()
