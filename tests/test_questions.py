"""
Tests for AI question reuse, attempts and answer evaluation.
"""
from unittest.mock import MagicMock

import pytest

from aisrs.schemas import AnswerEvaluation
from aisrs.srs.constants import FacetKind
from aisrs.srs.errors import NotFoundError, UpstreamGenerationError
from aisrs.srs.questions import evaluate_answer
from conftest import OWNER


AI_KIND = FacetKind.AI_GENERATED_QUESTION.value


@pytest.fixture
def question_facet(facet_store):
    facet_store.create_facets(OWNER, "ku-taberu", [AI_KIND])
    return facet_store.list_facets(OWNER)[0].id


def attempt(recycler, facet_id, times, outcome="fail"):
    for _ in range(times):
        recycler.record_question_attempt(OWNER, facet_id, "食べた", outcome)


@pytest.mark.integration
class TestResolveQuestion:
    def test_first_request_generates_and_stores(self, recycler, generator, facet_store, question_facet):
        resolved = recycler.resolve_question(OWNER, question_facet, "食べる")

        assert not resolved.reused
        assert generator.calls == [("食べる", None)]
        facet = facet_store.get_facet(OWNER, question_facet)
        assert facet.current_question_id == resolved.question.id
        assert facet.question_attempts == 0
        assert resolved.question.status == "active"
        assert resolved.question.expected_answers == ["食べる", "食べます"]

    def test_reused_below_attempt_limit(self, recycler, generator, question_facet):
        first = recycler.resolve_question(OWNER, question_facet, "食べる")
        attempt(recycler, question_facet, 2)

        again = recycler.resolve_question(OWNER, question_facet, "食べる")

        assert again.reused
        assert again.attempts == 2
        assert again.question.id == first.question.id
        assert len(generator.calls) == 1

    def test_regenerated_at_attempt_limit(self, recycler, generator, facet_store, question_facet):
        first = recycler.resolve_question(OWNER, question_facet, "食べる")
        attempt(recycler, question_facet, 3)

        fresh = recycler.resolve_question(OWNER, question_facet, "食べる")

        assert not fresh.reused
        assert fresh.question.id != first.question.id
        assert len(generator.calls) == 2
        assert facet_store.get_facet(OWNER, question_facet).question_attempts == 0

    def test_inactive_question_is_replaced(self, recycler, generator, question_facet):
        first = recycler.resolve_question(OWNER, question_facet, "食べる")
        recycler.set_question_status(OWNER, first.question.id, "inactive")

        fresh = recycler.resolve_question(OWNER, question_facet, "食べる")

        assert not fresh.reused
        assert fresh.question.id != first.question.id

    def test_flagged_question_is_still_reused(self, recycler, question_facet):
        first = recycler.resolve_question(OWNER, question_facet, "食べる")
        recycler.set_question_status(OWNER, first.question.id, "flagged")

        assert recycler.resolve_question(OWNER, question_facet, "食べる").reused

    def test_generation_failure_leaves_facet_unchanged(self, recycler, generator, facet_store, question_facet):
        generator.fail = True

        with pytest.raises(UpstreamGenerationError):
            recycler.resolve_question(OWNER, question_facet, "食べる")

        assert facet_store.get_facet(OWNER, question_facet).current_question_id is None

    def test_rejects_non_question_facets(self, recycler, facet_store):
        facet_store.create_facets(OWNER, "ku-taberu", ["Content-to-Reading"])
        facet_id = facet_store.list_facets(OWNER)[0].id

        with pytest.raises(ValueError):
            recycler.resolve_question(OWNER, facet_id, "食べる")

    def test_unknown_facet(self, recycler):
        with pytest.raises(NotFoundError):
            recycler.resolve_question(OWNER, "missing", "食べる")


@pytest.mark.integration
class TestAttemptsAndStatus:
    def test_attempt_records_previous_answers(self, recycler, question_facet):
        resolved = recycler.resolve_question(OWNER, question_facet, "食べる")

        recycler.record_question_attempt(OWNER, question_facet, "食べた", "fail")
        record = recycler.record_question_attempt(OWNER, question_facet, "食べる", "pass")

        assert record.attempts == 2
        assert record.question_id == resolved.question.id
        assert record.previous_answers == ["食べた", "食べる"]

    def test_attempt_without_question_still_counts(self, recycler, question_facet):
        record = recycler.record_question_attempt(OWNER, question_facet, "食べる", "pass")
        assert record.attempts == 1
        assert record.question_id is None

    def test_invalid_status(self, recycler, question_facet):
        resolved = recycler.resolve_question(OWNER, question_facet, "食べる")
        with pytest.raises(ValueError):
            recycler.set_question_status(OWNER, resolved.question.id, "deleted")

    def test_status_of_unknown_question(self, recycler):
        with pytest.raises(NotFoundError):
            recycler.set_question_status(OWNER, "missing", "flagged")

    def test_status_of_other_owners_question(self, recycler, question_facet):
        resolved = recycler.resolve_question(OWNER, question_facet, "食べる")
        with pytest.raises(NotFoundError):
            recycler.get_question("bob", resolved.question.id)


@pytest.mark.unit
class TestEvaluateAnswer:
    def test_local_match_is_case_insensitive(self):
        evaluator = MagicMock()

        result = evaluate_answer(" Family ", ["family", "kin"], evaluator=evaluator)

        assert result.result == "pass"
        evaluator.evaluate_answer.assert_not_called()

    def test_falls_back_to_evaluator(self):
        evaluator = MagicMock()
        evaluator.evaluate_answer.return_value = AnswerEvaluation(result="pass", explanation="どく is ドク in hiragana.")

        result = evaluate_answer("どく", ["ドク", "トク"], question="読", topic="読 reading", evaluator=evaluator)

        assert result.result == "pass"
        evaluator.evaluate_answer.assert_called_once_with("どく", ["ドク", "トク"], "読", "読 reading")

    def test_evaluator_errors_propagate(self):
        evaluator = MagicMock()
        evaluator.evaluate_answer.side_effect = UpstreamGenerationError("provider down")

        with pytest.raises(UpstreamGenerationError):
            evaluate_answer("x", ["y"], evaluator=evaluator)

    def test_without_evaluator_mismatch_fails(self):
        result = evaluate_answer("x", ["y", "z"])
        assert result.result == "fail"
        assert "y, z" in result.explanation
