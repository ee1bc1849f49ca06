"""
Pytest Configuration and Fixtures.

Shared fixtures: an in-memory SQLite scheduling database, a controllable
clock, and in-memory stand-ins for the fact store and question generator.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from aisrs.schemas import GeneratedQuestion, KnowledgeUnit, Lesson  # noqa: E402
from aisrs.srs.buckets import ForecastBucketStore  # noqa: E402
from aisrs.srs.constants import HOUR_BUCKET  # noqa: E402
from aisrs.srs.database import init_db  # noqa: E402
from aisrs.srs.due_reviews import DueReviewAssembler  # noqa: E402
from aisrs.srs.errors import NotFoundError, UpstreamGenerationError  # noqa: E402
from aisrs.srs.facets import ReviewFacetStore  # noqa: E402
from aisrs.srs.forecast import ForecastStatsTracker  # noqa: E402
from aisrs.srs.questions import QuestionRecycler  # noqa: E402
from aisrs.srs.scheduler import SrsScheduler  # noqa: E402

OWNER = "alice"

# Monday 2026-03-02 09:30 UTC
START = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Tests that run against the in-memory database")


# ---- Test Doubles ----

class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeFactStore:
    """In-memory fact store keyed by (owner_id, ku_id)."""

    def __init__(self):
        self.facts: dict[tuple[str, str], KnowledgeUnit] = {}
        self.lessons: dict[tuple[str, str], Lesson] = {}
        self.mastered: list[str] = []
        self.broken: set[str] = set()          # get_fact raises a non-NotFound error
        self.broken_lessons: set[str] = set()
        self.fail_add_facets_for: set[str] = set()
        self.fail_mark_mastered = False

    def add_fact(self, fact_id: str, owner_id: str = OWNER, content: str = "食べる", type: str = "Vocab") -> KnowledgeUnit:
        unit = KnowledgeUnit(ku_id=fact_id, owner_id=owner_id, type=type, content=content)
        self.facts[(owner_id, fact_id)] = unit
        return unit

    def add_lesson(self, fact_id: str, owner_id: str = OWNER) -> Lesson:
        lesson = Lesson(ku_id=fact_id, owner_id=owner_id, type="Vocab", content={"meaning": "to eat"})
        self.lessons[(owner_id, fact_id)] = lesson
        return lesson

    def get_fact(self, owner_id, fact_id):
        if fact_id in self.broken:
            raise RuntimeError("fact store unavailable")
        try:
            return self.facts[(owner_id, fact_id)]
        except KeyError:
            raise NotFoundError(f"Knowledge unit {fact_id} not found") from None

    def get_lesson(self, owner_id, fact_id):
        if fact_id in self.broken_lessons:
            raise RuntimeError("lesson store unavailable")
        return self.lessons.get((owner_id, fact_id))

    def mark_mastered(self, owner_id, fact_id):
        if self.fail_mark_mastered:
            raise RuntimeError("fact store unavailable")
        self.mastered.append(fact_id)
        self.facts[(owner_id, fact_id)].status = "mastered"

    def ensure_stub(self, owner_id, identifier, metadata):
        for (owner, _), unit in self.facts.items():
            if owner == owner_id and unit.type == "Kanji" and unit.content == identifier:
                return unit.ku_id
        return self.add_fact(f"kanji-{identifier}", owner_id, content=identifier, type="Kanji").ku_id

    def add_facets(self, owner_id, fact_id, count):
        if fact_id in self.fail_add_facets_for:
            raise RuntimeError("counter update failed")
        unit = self.get_fact(owner_id, fact_id)
        unit.facet_count += count
        if count > 0:
            unit.status = "reviewing"


class FakeGenerator:
    """Question generator returning numbered questions."""

    def __init__(self):
        self.calls: list[tuple[str, object]] = []
        self.fail = False

    def generate_question(self, topic, context=None):
        self.calls.append((topic, context))
        if self.fail:
            raise UpstreamGenerationError("provider down")
        return GeneratedQuestion(
            question=f"毎朝パンを[____]。({len(self.calls)})",
            answer="食べる",
            accepted_alternatives=["食べます"],
        )


# ---- Helpers ----

def bucket_counts(session_factory, granularity=HOUR_BUCKET, owner_id=OWNER):
    """Non-zero bucket counts of an owner, keyed by bucket key."""
    session = session_factory()
    try:
        counts = ForecastBucketStore(session, owner_id).all_counts(granularity)
        return {key: count for key, count in counts.items() if count}
    finally:
        session.close()


# ---- Fixtures ----

@pytest.fixture(autouse=True)
def utc_buckets(monkeypatch):
    """Bucket keys and streak days in UTC unless a test says otherwise."""
    monkeypatch.setenv("SRS_TIMEZONE", "UTC")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def fact_store():
    store = FakeFactStore()
    store.add_fact("ku-taberu", content="食べる")
    return store


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def tracker(clock, session_factory):
    return ForecastStatsTracker(clock=clock, tz=timezone.utc, session_factory=session_factory)


@pytest.fixture
def facet_store(fact_store, tracker, session_factory, clock):
    return ReviewFacetStore(fact_store, tracker=tracker, session_factory=session_factory, clock=clock)


@pytest.fixture
def scheduler(fact_store, tracker, session_factory, clock):
    return SrsScheduler(fact_store, tracker=tracker, session_factory=session_factory, clock=clock)


@pytest.fixture
def assembler(fact_store, session_factory, clock):
    return DueReviewAssembler(fact_store, session_factory=session_factory, clock=clock, max_workers=2)


@pytest.fixture
def recycler(generator, session_factory, clock):
    return QuestionRecycler(generator, session_factory=session_factory, clock=clock)
