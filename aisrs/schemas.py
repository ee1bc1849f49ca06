"""
Pydantic models for documents exchanged with the collaborators.

Knowledge units and lessons are MongoDB documents; generated questions and
answer evaluations are structured outputs returned by the AI provider.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class KnowledgeUnitType(str, Enum):
    """Kind of learnable item."""
    VOCAB = "Vocab"
    KANJI = "Kanji"
    GRAMMAR = "Grammar"
    CONCEPT = "Concept"
    EXAMPLE_SENTENCE = "ExampleSentence"


class KnowledgeUnitStatus(str, Enum):
    """Where a knowledge unit is in the learning pipeline."""
    LEARNING = "learning"    # Lesson seen, no facets yet
    REVIEWING = "reviewing"  # Has facets on the review schedule
    MASTERED = "mastered"    # A facet reached the final stage


class LessonDifficulty(str, Enum):
    JLPT_N5 = "JLPT-N5"
    JLPT_N4 = "JLPT-N4"
    JLPT_N3 = "JLPT-N3"
    JLPT_N2 = "JLPT-N2"
    JLPT_N1 = "JLPT-N1"


# ---- Knowledge Units ----

class KnowledgeUnit(BaseModel):
    """
    A learnable fact (a vocabulary word, a kanji, a grammar point).

    One document per unit in the knowledge_units collection.
    """
    ku_id: str = Field(..., description="Stable unit identifier (UUID)")
    owner_id: str
    type: KnowledgeUnitType
    content: str = Field(..., description="The main thing being learned (e.g. 食べる)")
    data: dict[str, Any] = Field(default_factory=dict, description="Reading, definition, meaning, ...")
    personal_notes: str = ""
    related_units: list[str] = Field(default_factory=list)
    status: KnowledgeUnitStatus = KnowledgeUnitStatus.LEARNING
    facet_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(use_enum_values=True)  # Store enum values as strings in MongoDB


class Lesson(BaseModel):
    """
    Cached explanatory content generated for a knowledge unit.
    """
    ku_id: str
    owner_id: str
    type: KnowledgeUnitType
    content: dict[str, Any] = Field(default_factory=dict, description="Lesson sections keyed by name")
    created_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


# ---- AI Structured Outputs ----

class GeneratedQuestion(BaseModel):
    """
    Structured output of the question generator.

    The question tests one topic through a single blank '[____]'.
    """
    question: str = Field(..., description="Japanese sentence containing exactly one '[____]' blank")
    answer: str = Field(..., description="The single word or particle that best fills the blank")
    context: Optional[str] = Field(default=None, description="Brief English hint, only when needed to disambiguate")
    accepted_alternatives: list[str] = Field(
        default_factory=list,
        description="Other grammatically valid answers (e.g. plain vs polite form)"
    )
    difficulty: LessonDifficulty = LessonDifficulty.JLPT_N5

    model_config = ConfigDict(use_enum_values=True)


class AnswerEvaluation(BaseModel):
    """Verdict on a learner's answer."""
    result: Literal["pass", "fail"]
    explanation: str = Field(..., description="One sentence on why the answer passed or failed")
