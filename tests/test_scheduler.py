"""
Tests for recording review outcomes end to end.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.orm.exc import StaleDataError

from aisrs.srs.buckets import bucket_keys, hour_keys
from aisrs.srs.constants import DAY_BUCKET, FacetKind
from aisrs.srs.errors import ConflictError, NotFoundError
from aisrs.srs.models import OwnerStats, ReviewFacet
from conftest import OWNER, START, bucket_counts


pytestmark = pytest.mark.integration


def create_facet(facet_store, kind="Content-to-Definition", fact_id="ku-taberu"):
    facet_store.create_facets(OWNER, fact_id, [kind])
    return next(f for f in facet_store.list_facets(OWNER) if f.facet_kind == kind).id


def set_stage(session_factory, tracker, facet_id, stage, due_at):
    """Put a facet at `stage` and re-derive the buckets from the facets."""
    session = session_factory()
    facet = session.get(ReviewFacet, facet_id)
    facet.stage = stage
    facet.due_at = due_at
    session.commit()
    session.close()
    tracker.rebuild(OWNER)


class TestRecordOutcome:
    def test_stage_four_fail_drops_to_two(self, facet_store, scheduler, tracker, session_factory, clock):
        facet_id = create_facet(facet_store)
        set_stage(session_factory, tracker, facet_id, 4, START)

        result = scheduler.record_outcome(OWNER, facet_id, "fail")

        assert result.previous_stage == 4
        assert result.new_stage == 2
        assert result.next_review_at == START + timedelta(hours=24)
        assert bucket_counts(session_factory) == {"2026-03-03-09": 1}
        assert bucket_counts(session_factory, DAY_BUCKET) == {"2026-03-03": 1}

    def test_updates_facet_and_appends_history(self, facet_store, scheduler, clock):
        facet_id = create_facet(facet_store)

        scheduler.record_outcome(OWNER, facet_id, "pass")
        clock.advance(hours=8)
        scheduler.record_outcome(OWNER, facet_id, "fail")

        facet = facet_store.get_facet(OWNER, facet_id)
        assert facet.stage == 1
        assert facet.last_reviewed_at == clock()
        assert facet.due_at == clock() + timedelta(hours=8)
        assert [(h.outcome, h.resulting_stage) for h in facet.history] == [("pass", 1), ("fail", 1)]
        assert facet.history[0].timestamp == START

    def test_stage_zero_fail_redrills_in_ten_minutes(self, facet_store, scheduler):
        facet_id = create_facet(facet_store)

        result = scheduler.record_outcome(OWNER, facet_id, "fail")

        assert result.new_stage == 0
        assert result.next_review_at == START + timedelta(minutes=10)

    def test_buckets_match_due_facets_in_window(self, facet_store, fact_store, scheduler, tracker, session_factory, clock):
        fact_store.add_fact("ku-nomu", content="飲む")
        facet_store.create_facets(OWNER, "ku-taberu", ["Content-to-Definition", "Content-to-Reading"])
        facet_store.create_facets(OWNER, "ku-nomu", ["Content-to-Definition", "Reading-to-Content"])
        facet_ids = [f.id for f in facet_store.list_facets(OWNER)]

        outcomes = ["pass", "fail", "pass", "pass", "fail", "pass", "pass"]
        for step, outcome in enumerate(outcomes):
            scheduler.record_outcome(OWNER, facet_ids[step % len(facet_ids)], outcome)
            clock.advance(minutes=45)

            window = set(hour_keys(clock(), 24, tracker.tz))
            expected = sum(
                1 for f in facet_store.list_facets(OWNER)
                if bucket_keys(f.due_at, tracker.tz).hour_key in window
            )
            assert tracker.get_forecast(OWNER).next_24_hours == expected

        total_hourly = sum(bucket_counts(session_factory).values())
        assert total_hourly == len(facet_ids)

    def test_updates_owner_stats(self, facet_store, scheduler, session_factory):
        facet_id = create_facet(facet_store)

        scheduler.record_outcome(OWNER, facet_id, "pass")
        scheduler.record_outcome(OWNER, facet_id, "fail")

        session = session_factory()
        stats = session.get(OwnerStats, OWNER)
        session.close()
        assert (stats.total_reviews, stats.passed_reviews, stats.streak) == (2, 1, 1)

    def test_unknown_facet(self, scheduler):
        with pytest.raises(NotFoundError):
            scheduler.record_outcome(OWNER, "missing", "pass")

    def test_other_owners_facet_is_not_found(self, facet_store, scheduler):
        facet_id = create_facet(facet_store)
        with pytest.raises(NotFoundError):
            scheduler.record_outcome("bob", facet_id, "pass")

    def test_invalid_outcome(self, facet_store, scheduler):
        facet_id = create_facet(facet_store)
        with pytest.raises(ValueError):
            scheduler.record_outcome(OWNER, facet_id, "perfect")


class TestMastery:
    def test_reaching_final_stage_marks_fact_mastered(self, facet_store, fact_store, scheduler, tracker, session_factory):
        facet_id = create_facet(facet_store)
        set_stage(session_factory, tracker, facet_id, 7, START)

        result = scheduler.record_outcome(OWNER, facet_id, "pass")

        assert result.mastered
        assert result.next_review_at == START + timedelta(hours=8760)
        assert fact_store.mastered == ["ku-taberu"]
        assert fact_store.get_fact(OWNER, "ku-taberu").status == "mastered"

    def test_ai_question_facet_does_not_master_fact(self, facet_store, fact_store, scheduler, tracker, session_factory):
        facet_id = create_facet(facet_store, kind=FacetKind.AI_GENERATED_QUESTION.value)
        set_stage(session_factory, tracker, facet_id, 7, START)

        scheduler.record_outcome(OWNER, facet_id, "pass")

        assert fact_store.mastered == []

    def test_mark_mastered_failure_keeps_review(self, facet_store, fact_store, scheduler, tracker, session_factory):
        facet_id = create_facet(facet_store)
        set_stage(session_factory, tracker, facet_id, 7, START)
        fact_store.fail_mark_mastered = True

        result = scheduler.record_outcome(OWNER, facet_id, "pass")

        assert result.new_stage == 8
        assert facet_store.get_facet(OWNER, facet_id).stage == 8


class TestConflicts:
    def test_conflict_is_retried_without_double_counting(self, facet_store, scheduler, tracker, session_factory):
        facet_id = create_facet(facet_store)
        original = tracker.reschedule
        calls = []

        def flaky_reschedule(*args, **kwargs):
            stats = original(*args, **kwargs)
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("owner_stats row was updated concurrently")
            return stats

        with patch.object(tracker, "reschedule", side_effect=flaky_reschedule):
            result = scheduler.record_outcome(OWNER, facet_id, "pass")

        assert len(calls) == 2
        assert result.new_stage == 1
        assert len(facet_store.get_facet(OWNER, facet_id).history) == 1
        assert bucket_counts(session_factory) == {"2026-03-02-17": 1}

        session = session_factory()
        assert session.get(OwnerStats, OWNER).total_reviews == 1
        session.close()

    def test_exhausted_retries_raise_conflict_and_leave_state(self, facet_store, scheduler, tracker, session_factory):
        facet_id = create_facet(facet_store)

        with patch.object(tracker, "reschedule", side_effect=StaleDataError("conflict")), \
                patch("aisrs.srs.database.time.sleep"):
            with pytest.raises(ConflictError):
                scheduler.record_outcome(OWNER, facet_id, "pass")

        facet = facet_store.get_facet(OWNER, facet_id)
        assert facet.stage == 0
        assert facet.history == ()
        assert bucket_counts(session_factory) == {"2026-03-02-09": 1}
