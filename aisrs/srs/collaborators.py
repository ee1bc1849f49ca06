"""
Interfaces of the external collaborators the scheduling engine calls.

The MongoDB knowledge repository and the OpenAI question generator
implement these; tests substitute in-memory fakes.
"""

from __future__ import annotations
from typing import Any, Optional, Protocol

from aisrs.schemas import AnswerEvaluation, GeneratedQuestion, KnowledgeUnit, Lesson


class FactStore(Protocol):
    """Fact-management collaborator (knowledge units and their lessons)."""

    def get_fact(self, owner_id: str, fact_id: str) -> KnowledgeUnit:
        """Return the fact or raise NotFoundError (also on owner mismatch)."""
        ...

    def get_lesson(self, owner_id: str, fact_id: str) -> Optional[Lesson]:
        ...

    def mark_mastered(self, owner_id: str, fact_id: str) -> None:
        ...

    def ensure_stub(self, owner_id: str, identifier: str, metadata: dict[str, Any]) -> str:
        """Find or create the fact for a component (e.g. a kanji) and return its id."""
        ...

    def add_facets(self, owner_id: str, fact_id: str, count: int) -> None:
        """Adjust the fact's facet counter by `count` (negative to undo)."""
        ...


class QuestionGenerator(Protocol):
    """AI-question collaborator."""

    def generate_question(self, topic: str, context: Optional[str] = None) -> GeneratedQuestion:
        """Raise UpstreamGenerationError when the provider fails."""
        ...


class AnswerEvaluator(Protocol):
    """AI grading collaborator for answers that miss every expected answer."""

    def evaluate_answer(
        self,
        user_answer: str,
        expected_answers: list[str],
        question: str,
        topic: str
    ) -> AnswerEvaluation:
        """Raise UpstreamGenerationError when the provider fails."""
        ...
