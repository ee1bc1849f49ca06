"""
SQLAlchemy ORM Models for the SRS Database

Defines review facets, their append-only review history, the per-owner
forecast counters and the stored AI questions.
"""

from datetime import timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as naive UTC.

    Keeps comparisons consistent on backends without native timezone
    support (SQLite returns naive values).
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes are not accepted; pass an aware datetime")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ReviewFacet(Base):
    """
    Scheduling record for one reviewable aspect of a knowledge unit.

    due_at is only ever written together with stage, and always together
    with the owner's forecast buckets.
    """
    __tablename__ = 'review_facets'

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(255), nullable=False)
    fact_id = Column(String(255), nullable=False)
    facet_kind = Column(String(50), nullable=False)

    # Scheduling state
    stage = Column(Integer, nullable=False, default=0)
    due_at = Column(UTCDateTime, nullable=False)
    last_reviewed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)

    # AI-generated question facets only
    current_question_id = Column(String(36), nullable=True)
    question_attempts = Column(Integer, nullable=False, default=0)

    # Optimistic concurrency
    version = Column(Integer, nullable=False)

    history = relationship(
        "ReviewEvent",
        back_populates="facet",
        order_by="ReviewEvent.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("idx_review_facets_owner_due", "owner_id", "due_at"),
    )

    def __repr__(self):
        return f"<ReviewFacet({self.id}, {self.facet_kind}, stage={self.stage})>"


class ReviewEvent(Base):
    """
    Append-only history entry: one completed review of a facet.
    """
    __tablename__ = 'review_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    facet_id = Column(String(36), ForeignKey("review_facets.id"), nullable=False, index=True)
    owner_id = Column(String(255), nullable=False, index=True)

    timestamp = Column(UTCDateTime, nullable=False)
    outcome = Column(String(10), nullable=False)  # "pass" | "fail"
    stage_before = Column(Integer, nullable=False)
    resulting_stage = Column(Integer, nullable=False)

    facet = relationship("ReviewFacet", back_populates="history")

    def __repr__(self):
        return f"<ReviewEvent(id={self.id}, {self.facet_id}, {self.outcome})>"


class OwnerStats(Base):
    """
    Streak and accuracy counters for one owner.

    Every reschedule bumps `version`; a reschedule that read an older
    version fails with StaleDataError and is retried.
    """
    __tablename__ = 'owner_stats'

    owner_id = Column(String(255), primary_key=True)
    streak = Column(Integer, nullable=False, default=0)
    last_review_at = Column(UTCDateTime, nullable=True)
    total_reviews = Column(Integer, nullable=False, default=0)
    passed_reviews = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<OwnerStats({self.owner_id}, streak={self.streak})>"


class ForecastBucket(Base):
    """
    Calendar bucket counter: how many of an owner's facets fall due in
    one hour ("YYYY-MM-DD-HH") or one day ("YYYY-MM-DD").

    Counts are written back as absolute values, so each row carries its
    own `version`: a write based on a stale read is rejected.
    """
    __tablename__ = 'forecast_buckets'

    owner_id = Column(String(255), primary_key=True)
    granularity = Column(String(10), primary_key=True)  # "hour" | "day"
    bucket_key = Column(String(16), primary_key=True)
    count = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<ForecastBucket({self.owner_id}, {self.bucket_key}={self.count})>"


class Question(Base):
    """
    A stored AI-generated question, reused across attempts of one facet.
    """
    __tablename__ = 'questions'

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(255), nullable=False, index=True)
    fact_id = Column(String(255), nullable=False)
    facet_id = Column(String(36), nullable=True)

    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    context = Column(Text, nullable=True)
    accepted_alternatives = Column(JSON, nullable=False, default=list)
    difficulty = Column(String(20), nullable=True)

    status = Column(String(10), nullable=False, default="active")  # active | flagged | inactive
    created_at = Column(UTCDateTime, nullable=False)
    last_used_at = Column(UTCDateTime, nullable=True)

    previous_answers = relationship(
        "QuestionAnswer",
        order_by="QuestionAnswer.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Question({self.id}, status={self.status})>"


class QuestionAnswer(Base):
    """
    A learner's submitted answer to a stored question.
    """
    __tablename__ = 'question_answers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(String(36), ForeignKey("questions.id"), nullable=False, index=True)
    answer = Column(Text, nullable=False)
    outcome = Column(String(10), nullable=False)
    timestamp = Column(UTCDateTime, nullable=False)
