"""
OpenAI-backed question generator and answer evaluator.

Uses structured outputs: the model's reply is parsed straight into the
GeneratedQuestion / AnswerEvaluation pydantic models. Transient provider
errors (rate limits, 5xx, connection problems) are retried with
exponential backoff; anything else, or running out of retries, surfaces as
UpstreamGenerationError.
"""

from __future__ import annotations

import json
import os
import time
from typing import Callable, Optional, TypeVar

import openai
from dotenv import load_dotenv
from loguru import logger
from openai import OpenAI
from pydantic import BaseModel

from aisrs.schemas import AnswerEvaluation, GeneratedQuestion
from aisrs.srs.errors import UpstreamGenerationError

# Load environment variables
load_dotenv()

DEFAULT_MODEL = "gpt-4o-2024-08-06"
MAX_ATTEMPTS = 5
INITIAL_BACKOFF_SECONDS = 1.0

ModelT = TypeVar("ModelT", bound=BaseModel)

QUESTION_SYSTEM_PROMPT = """You are an expert Japanese tutor and quiz generator.
You will be given a single piece of Japanese: a word or grammar concept (the 'topic').
Create one context-based question that tests the learner's understanding of that topic.
You can use any of these forms:
- Verb conjugation: if the topic is a verb, ask for a specific form (e.g. past potential).
- Particle matching: a sentence where the topic combines with a particle shown as '[____]'.
- Fill in the blank: a context-based sentence with a single blank '[____]'.

Rules:
1. The question must directly test the topic.
2. Use '[____]' for the blank, exactly once.
3. The answer is the single word or particle that fills the blank.
4. The question field contains ONLY Japanese text and the blank. No English.
5. Use the context field for fill-in-the-blank questions on nouns or adjectives, to tell the answer apart from common synonyms.
6. The sentence must be grammatical Japanese.
7. Vary the format between particles, conjugations and the word itself.
8. Unless the context fixes a politeness level, list the other valid forms (plain, polite masu form) in accepted_alternatives.
9. Keep the surrounding sentence simple (about JLPT N4) so the learner focuses on the blank.
"""

EVALUATION_SYSTEM_PROMPT = """You are an SRS answer evaluator. A learner is being quizzed.
Decide whether the learner's answer is correct.
1. The learner is correct if the answer matches any one of the expected answers.
2. If the answer is correct but missing from the list, pass it and say why.
3. Be lenient with hiragana vs katakana (expected "ドク", typed "どく" is a pass).
4. Be lenient with extra punctuation or whitespace.
Give a one-sentence explanation that refers to the learner's answer.
"""

# Initialize OpenAI client (module-level, reused across calls)
_client: Optional[OpenAI] = None


def get_client() -> OpenAI:
    """Get or create the OpenAI client."""
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY not found in environment variables")
        # Retries are done by OpenAIQuestionGenerator._parse
        _client = OpenAI(api_key=api_key, max_retries=0)
    return _client


def get_model() -> str:
    return os.getenv("OPENAI_MODEL", DEFAULT_MODEL)


def is_retryable(error: Exception) -> bool:
    """Rate limits, server errors and connection failures are worth retrying."""
    if isinstance(error, (openai.RateLimitError, openai.APIConnectionError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code >= 500
    return False


class OpenAIQuestionGenerator:
    """
    Generates quiz questions and grades free-text answers with OpenAI.

    Args:
        client: OpenAI client (defaults to the shared module client)
        model: Model name (must support structured outputs)
        max_attempts: Tries per call before giving up
        sleep: Backoff sleep function (replaced in tests)
    """

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: Optional[str] = None,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep
    ):
        self._client = client
        self.model = model or get_model()
        self.max_attempts = max_attempts
        self.sleep = sleep

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    def _parse(self, label: str, messages: list[dict], response_format: type[ModelT]) -> ModelT:
        """Call the model with retries and return the parsed structured output."""
        delay = INITIAL_BACKOFF_SECONDS

        for attempt in range(1, self.max_attempts + 1):
            try:
                completion = self.client.chat.completions.parse(
                    model=self.model,
                    messages=messages,
                    response_format=response_format,
                )
            except Exception as e:
                if not is_retryable(e):
                    logger.error(f"[AI] {label} failed: {e}")
                    raise UpstreamGenerationError(f"{label} failed: {e}") from e
                if attempt == self.max_attempts:
                    logger.error(f"[AI] {label} failed after {attempt} attempts: {e}")
                    raise UpstreamGenerationError(f"{label} failed after {attempt} attempts: {e}") from e
                logger.warning(f"[AI] {label} attempt {attempt} failed ({e}), retrying in {delay:.0f}s")
                self.sleep(delay)
                delay *= 2
                continue

            parsed = completion.choices[0].message.parsed
            if parsed is None:
                raise UpstreamGenerationError(f"{label}: failed to parse structured output")
            return parsed

        raise UpstreamGenerationError(f"{label}: no attempts made")

    def generate_question(self, topic: str, context: Optional[str] = None) -> GeneratedQuestion:
        """
        Generate a fill-in-the-blank style question for `topic`.

        Args:
            topic: The word or grammar point to test
            context: Optional extra guidance (e.g. recently used questions to avoid)

        Returns:
            GeneratedQuestion

        Raises:
            UpstreamGenerationError: Provider failure or unusable reply
        """
        user_message = f"Topic: {topic}"
        if context:
            user_message += f"\n\n{context}"

        logger.info(f"[AI] Generating question for topic: {topic}")
        question = self._parse(
            f"Question generation for {topic}",
            [
                {"role": "system", "content": QUESTION_SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            GeneratedQuestion,
        )

        if question.question.count("[____]") != 1:
            raise UpstreamGenerationError(
                f"Generated question for {topic} must contain exactly one '[____]' blank"
            )
        return question

    def evaluate_answer(
        self,
        user_answer: str,
        expected_answers: list[str],
        question: str,
        topic: str
    ) -> AnswerEvaluation:
        """Ask the model whether `user_answer` should pass."""
        user_message = (
            f"Question: {question or 'N/A'}\n"
            f"Topic: {topic or 'N/A'}\n"
            f"Expected answer(s): {json.dumps(expected_answers, ensure_ascii=False)}\n"
            f"Learner's answer: {user_answer}"
        )
        return self._parse(
            f"Answer evaluation for {topic}",
            [
                {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            AnswerEvaluation,
        )
