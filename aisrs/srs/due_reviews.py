"""
Due Reviews - What the learner should review now

Reads the facets due at `now` and joins each one to its parent fact and
any cached lesson. Read-only: runs outside any transaction and may be one
poll behind a concurrent review.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from aisrs.schemas import KnowledgeUnit, Lesson
from aisrs.srs.clock import Clock, utc_now
from aisrs.srs.collaborators import FactStore
from aisrs.srs.database import get_session
from aisrs.srs.errors import NotFoundError
from aisrs.srs.facets import FacetSnapshot, query_due, to_snapshot


@dataclass(frozen=True)
class ReviewItem:
    """A due facet with its parent fact and optional lesson."""
    facet: FacetSnapshot
    fact: KnowledgeUnit
    lesson: Optional[Lesson] = None


class DueReviewAssembler:
    """
    Builds the ordered review queue for one owner.

    Parent lookups are independent and run in parallel; a lookup that
    fails only drops its own item.
    """

    def __init__(
        self,
        fact_store: FactStore,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Clock = utc_now,
        max_workers: int = 8
    ):
        self.fact_store = fact_store
        self.session_factory = session_factory or get_session
        self.clock = clock
        self.max_workers = max_workers

    def get_due_reviews(self, owner_id: str, now: Optional[datetime] = None) -> list[ReviewItem]:
        """
        Facets due at or before `now`, earliest due first, joined to their facts.

        Orphaned facets (parent fact gone) are logged and left out.
        """
        if now is None:
            now = self.clock()

        session = self.session_factory()
        try:
            facets = [to_snapshot(facet, with_history=False) for facet in query_due(session, owner_id, now)]
        finally:
            session.close()

        if not facets:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(facets))) as executor:
            # map() keeps input order, so the due-date ordering survives the join
            joined = list(executor.map(lambda facet: self._join(owner_id, facet), facets))

        items = [item for item in joined if item is not None]
        dropped = len(facets) - len(items)
        if dropped:
            logger.warning(f"[DUE] Dropped {dropped} of {len(facets)} due facets for {owner_id}")
        logger.debug(f"[DUE] {len(items)} reviews due for {owner_id}")
        return items

    def _join(self, owner_id: str, facet: FacetSnapshot) -> Optional[ReviewItem]:
        try:
            fact = self.fact_store.get_fact(owner_id, facet.fact_id)
        except NotFoundError:
            logger.warning(f"[DUE] Orphaned facet {facet.id}: fact {facet.fact_id} not found")
            return None
        except Exception as e:
            logger.warning(f"[DUE] Skipping facet {facet.id}: fact lookup failed: {e}")
            return None

        lesson = None
        try:
            lesson = self.fact_store.get_lesson(owner_id, facet.fact_id)
        except Exception as e:
            logger.warning(f"[DUE] Lesson lookup failed for {facet.fact_id}: {e}")

        return ReviewItem(facet=facet, fact=fact, lesson=lesson)
