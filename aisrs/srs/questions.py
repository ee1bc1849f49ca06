"""
Questions - Reuse or regenerate AI quiz questions

An AI-Generated-Question facet points at one stored question. The question
is shown again until it has been attempted QUESTION_REUSE_LIMIT times or a
learner deactivates it; after that a fresh one is generated.

Generation is a network call, so it happens before the transaction that
stores the new question; no transaction is held open across it.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from aisrs.schemas import AnswerEvaluation, GeneratedQuestion
from aisrs.srs.clock import Clock, utc_now
from aisrs.srs.collaborators import AnswerEvaluator, QuestionGenerator
from aisrs.srs.constants import QUESTION_REUSE_LIMIT, FacetKind, ReviewOutcome
from aisrs.srs.database import Transaction, get_session, run_in_transaction
from aisrs.srs.errors import NotFoundError
from aisrs.srs.facets import load_facet
from aisrs.srs.models import Question, QuestionAnswer, ReviewFacet
from aisrs.srs.transitions import coerce_outcome

QUESTION_STATUSES = ("active", "flagged", "inactive")


@dataclass(frozen=True)
class StoredQuestion:
    """Read-only view of a stored question."""
    id: str
    question: str
    answer: str
    context: Optional[str]
    accepted_alternatives: tuple[str, ...]
    difficulty: Optional[str]
    status: str

    @property
    def expected_answers(self) -> list[str]:
        return [self.answer, *self.accepted_alternatives]


@dataclass(frozen=True)
class ResolvedQuestion:
    """The question to present for a facet, and whether it was reused."""
    facet_id: str
    question: StoredQuestion
    reused: bool
    attempts: int = 0


@dataclass(frozen=True)
class AttemptRecord:
    facet_id: str
    question_id: Optional[str]
    attempts: int
    previous_answers: list[str] = field(default_factory=list)


def _to_stored(row: Question) -> StoredQuestion:
    return StoredQuestion(
        id=row.id,
        question=row.question,
        answer=row.answer,
        context=row.context,
        accepted_alternatives=tuple(row.accepted_alternatives or ()),
        difficulty=row.difficulty,
        status=row.status
    )


def _load_question_facet(session: Session, owner_id: str, facet_id: str) -> ReviewFacet:
    facet = load_facet(session, owner_id, facet_id)
    if facet.facet_kind != FacetKind.AI_GENERATED_QUESTION.value:
        raise ValueError(f"Facet {facet_id} is a {facet.facet_kind} facet, not an AI question facet")
    return facet


def _load_question(session: Session, owner_id: str, question_id: str) -> Question:
    question = session.get(Question, question_id)
    if question is None or question.owner_id != owner_id:
        raise NotFoundError(f"Question {question_id} not found")
    return question


class QuestionRecycler:
    """
    Decides reuse-vs-regenerate for AI question facets and keeps the
    per-facet attempt counter.
    """

    def __init__(
        self,
        generator: QuestionGenerator,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Clock = utc_now,
        reuse_limit: int = QUESTION_REUSE_LIMIT
    ):
        self.generator = generator
        self.session_factory = session_factory or get_session
        self.clock = clock
        self.reuse_limit = reuse_limit

    def resolve_question(
        self,
        owner_id: str,
        facet_id: str,
        topic: str,
        context: Optional[str] = None
    ) -> ResolvedQuestion:
        """
        Return the facet's current question, or a freshly generated one.

        Reuses the stored question while it has been attempted fewer than
        `reuse_limit` times and is not inactive. Does not count an attempt;
        see record_question_attempt.

        Raises:
            NotFoundError: Facet missing or owned by someone else
            ValueError: Facet is not an AI question facet
            UpstreamGenerationError: A new question was needed and generation failed
        """
        session = self.session_factory()
        try:
            facet = _load_question_facet(session, owner_id, facet_id)
            if facet.current_question_id and facet.question_attempts < self.reuse_limit:
                current = session.get(Question, facet.current_question_id)
                if current is not None and current.status != "inactive":
                    logger.debug(
                        f"[QUESTIONS] Reusing {current.id} for {facet_id} "
                        f"({facet.question_attempts}/{self.reuse_limit} attempts)"
                    )
                    return ResolvedQuestion(
                        facet_id=facet_id,
                        question=_to_stored(current),
                        reused=True,
                        attempts=facet.question_attempts
                    )
            fact_id = facet.fact_id
        finally:
            session.close()

        logger.info(f"[QUESTIONS] Generating new question for {facet_id} (topic: {topic})")
        generated = self.generator.generate_question(topic, context)
        return self._store_new_question(owner_id, facet_id, fact_id, generated)

    def _store_new_question(
        self,
        owner_id: str,
        facet_id: str,
        fact_id: str,
        generated: GeneratedQuestion
    ) -> ResolvedQuestion:
        question_id = str(uuid.uuid4())

        def work(tx: Transaction) -> StoredQuestion:
            now = self.clock()
            facet = _load_question_facet(tx.session, owner_id, facet_id)
            row = Question(
                id=question_id,
                owner_id=owner_id,
                fact_id=fact_id,
                facet_id=facet_id,
                question=generated.question,
                answer=generated.answer,
                context=generated.context,
                accepted_alternatives=list(generated.accepted_alternatives),
                difficulty=generated.difficulty,
                status="active",
                created_at=now,
                last_used_at=now
            )
            tx.session.add(row)
            facet.current_question_id = question_id
            facet.question_attempts = 0
            tx.session.flush()
            return _to_stored(row)

        stored = run_in_transaction(work, self.session_factory, label=f"store question {facet_id}")
        logger.info(f"[QUESTIONS] Stored question {question_id} for {facet_id}")
        return ResolvedQuestion(facet_id=facet_id, question=stored, reused=False, attempts=0)

    def record_question_attempt(
        self,
        owner_id: str,
        facet_id: str,
        answer: str,
        outcome: ReviewOutcome | str
    ) -> AttemptRecord:
        """
        Count one submitted answer against the facet's current question.

        Increments question_attempts and appends the answer to the
        question's previous answers in one transaction.
        """
        outcome = coerce_outcome(outcome)

        def work(tx: Transaction) -> AttemptRecord:
            now = self.clock()
            facet = _load_question_facet(tx.session, owner_id, facet_id)
            facet.question_attempts += 1

            previous: list[str] = []
            question = None
            if facet.current_question_id:
                question = tx.session.get(Question, facet.current_question_id)
            if question is not None:
                question.previous_answers.append(QuestionAnswer(
                    answer=answer,
                    outcome=outcome.value,
                    timestamp=now
                ))
                question.last_used_at = now
                previous = [entry.answer for entry in question.previous_answers]
            tx.session.flush()

            return AttemptRecord(
                facet_id=facet_id,
                question_id=facet.current_question_id,
                attempts=facet.question_attempts,
                previous_answers=previous
            )

        return run_in_transaction(work, self.session_factory, label=f"question attempt {facet_id}")

    def set_question_status(self, owner_id: str, question_id: str, status: str) -> StoredQuestion:
        """Flag, deactivate or reactivate a stored question."""
        if status not in QUESTION_STATUSES:
            raise ValueError(f"Question status must be one of {QUESTION_STATUSES}, got {status!r}")

        def work(tx: Transaction) -> StoredQuestion:
            question = _load_question(tx.session, owner_id, question_id)
            question.status = status
            tx.session.flush()
            return _to_stored(question)

        stored = run_in_transaction(work, self.session_factory, label=f"question status {question_id}")
        logger.info(f"[QUESTIONS] Question {question_id} is now {status}")
        return stored

    def get_question(self, owner_id: str, question_id: str) -> StoredQuestion:
        session = self.session_factory()
        try:
            return _to_stored(_load_question(session, owner_id, question_id))
        finally:
            session.close()


# ---- Answer Evaluation ----

def _normalize(text: str) -> str:
    return text.strip().casefold()


def evaluate_answer(
    user_answer: str,
    expected_answers: list[str],
    question: str = "",
    topic: str = "",
    evaluator: Optional[AnswerEvaluator] = None
) -> AnswerEvaluation:
    """
    Grade a learner's answer.

    A case-insensitive match against any expected answer passes without an
    AI call. Anything else goes to the evaluator, whose errors propagate.

    Args:
        user_answer: What the learner typed
        expected_answers: Accepted answers
        question: Question text shown to the learner
        topic: What the question was testing
        evaluator: AI grader for non-matching answers

    Returns:
        AnswerEvaluation with result "pass" or "fail"
    """
    answer = _normalize(user_answer)
    if any(_normalize(expected) == answer for expected in expected_answers):
        logger.debug(f"[QUESTIONS] Local match for topic: {topic}")
        return AnswerEvaluation(result="pass", explanation="Correct!")

    if evaluator is None:
        return AnswerEvaluation(
            result="fail",
            explanation=f"Incorrect. Expected: {', '.join(expected_answers)}."
        )

    logger.info(f"[QUESTIONS] No local match for topic: {topic}, asking evaluator")
    return evaluator.evaluate_answer(user_answer, expected_answers, question, topic)
