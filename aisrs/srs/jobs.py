"""
Jobs - Bulk question prefetch

Generates (or confirms) the current question for many AI question facets
at once, e.g. right after a learner starts a batch of facts. Each item
succeeds or fails on its own; a final cleanup step always runs.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from loguru import logger

from aisrs.srs.questions import QuestionRecycler


@dataclass(frozen=True)
class WorkItem:
    """One facet whose question should be ready before review."""
    facet_id: str
    topic: str
    context: Optional[str] = None


@dataclass(frozen=True)
class ItemResult:
    facet_id: str
    ok: bool
    question_id: Optional[str] = None
    reused: bool = False
    error: Optional[str] = None


@dataclass
class BatchReport:
    """Per-item results of a prefetch run."""
    owner_id: str
    results: list[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)

    @property
    def generated(self) -> int:
        return sum(1 for result in self.results if result.ok and not result.reused)


def prefetch_questions(
    recycler: QuestionRecycler,
    owner_id: str,
    items: Iterable[WorkItem],
    max_workers: int = 4,
    cleanup: Optional[Callable[[], None]] = None
) -> BatchReport:
    """
    Resolve the question of every item in a bounded worker pool.

    Args:
        recycler: Question recycler doing the reuse/generate decision
        owner_id: Learner owning the facets
        items: Facets to prepare
        max_workers: Concurrent generator calls
        cleanup: Called once after all items finish, even on failure
            (e.g. to release a provider-side cached context)

    Returns:
        BatchReport in the order the items were given
    """
    items = list(items)
    report = BatchReport(owner_id=owner_id)
    by_index: dict[int, ItemResult] = {}

    try:
        if items:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                future_to_item = {
                    executor.submit(
                        recycler.resolve_question,
                        owner_id,
                        item.facet_id,
                        item.topic,
                        item.context,
                    ): index
                    for index, item in enumerate(items)
                }

                for future in as_completed(future_to_item):
                    index = future_to_item[future]
                    item = items[index]
                    try:
                        resolved = future.result()
                        by_index[index] = ItemResult(
                            facet_id=item.facet_id,
                            ok=True,
                            question_id=resolved.question.id,
                            reused=resolved.reused
                        )
                    except Exception as e:
                        logger.error(f"[QUESTIONS] Prefetch failed for {item.facet_id}: {e}")
                        by_index[index] = ItemResult(
                            facet_id=item.facet_id,
                            ok=False,
                            error=str(e)
                        )
    finally:
        if cleanup is not None:
            try:
                cleanup()
            except Exception as e:
                logger.warning(f"[QUESTIONS] Prefetch cleanup failed: {e}")

    report.results = [by_index[index] for index in range(len(items))]
    logger.info(
        f"[QUESTIONS] Prefetch for {owner_id}: {report.succeeded} ok "
        f"({report.generated} generated), {report.failed} failed"
    )
    return report
