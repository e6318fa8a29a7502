"""Scoring engine for submitted attempts.

Question definitions are decoded once, where they are loaded, into a typed
``AnswerValue`` (``ChoiceAnswer`` / ``MultiSelectAnswer`` / ``TextAnswer``) so
comparison never re-parses JSON ad hoc.

Per-type rules:
  - TRUE_FALSE / MULTIPLE_CHOICE: exact token equality.
  - MULTI_SELECT: both sides sorted and compared element-wise. Duplicates are
    kept, so ``["a", "a", "b"]`` does not match ``["a", "b"]``.
  - FILL_IN_BLANK: case-insensitive, whitespace-trimmed equality.

Unanswered questions are scored as an empty-string submission. ``score()`` is a
pure function: identical inputs give identical output.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

from quizportal.db.models import EvaluationQuestion, QuestionTypeEnum

logger = logging.getLogger(__name__)


class QuestionDataError(ValueError):
    """A stored question cannot be decoded (malformed correct answer)."""


# ── Answer values (tagged union) ─────────────────────────────────────────────


@dataclass(frozen=True)
class ChoiceAnswer:
    token: str


@dataclass(frozen=True)
class MultiSelectAnswer:
    tokens: tuple[str, ...] | None  # None: submission was not a JSON array


@dataclass(frozen=True)
class TextAnswer:
    text: str


AnswerValue = Union[ChoiceAnswer, MultiSelectAnswer, TextAnswer]


def encode_raw_answer(value: Any) -> str:
    """Store a client-supplied value as the raw string kept on the answer row."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _parse_tokens(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if not isinstance(value, (list, tuple)):
        return None
    return tuple(t if isinstance(t, str) else json.dumps(t) for t in value)


def decode_answer(question_type: QuestionTypeEnum, raw: Any) -> AnswerValue:
    """Decode a raw submitted value for *question_type*."""
    if question_type == QuestionTypeEnum.MULTI_SELECT:
        return MultiSelectAnswer(_parse_tokens(raw))
    if question_type == QuestionTypeEnum.FILL_IN_BLANK:
        return TextAnswer(encode_raw_answer(raw))
    return ChoiceAnswer(encode_raw_answer(raw))


# ── Question definitions ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScorableQuestion:
    question_id: uuid.UUID
    question_type: QuestionTypeEnum
    correct: AnswerValue
    points: int
    order: int


def load_question(ref: EvaluationQuestion) -> ScorableQuestion:
    """Decode an evaluation question row into its scorable form.

    Raises:
        QuestionDataError: If a MULTI_SELECT correct answer is not a JSON array.
    """
    question = ref.question
    correct = decode_answer(question.type, question.correct_answer or "")
    if isinstance(correct, MultiSelectAnswer) and correct.tokens is None:
        raise QuestionDataError(
            f"Question {question.id} has a malformed MULTI_SELECT correct answer"
        )
    return ScorableQuestion(
        question_id=question.id,
        question_type=question.type,
        correct=correct,
        points=ref.points or 1,
        order=ref.position,
    )


# ── Correctness ──────────────────────────────────────────────────────────────


def is_correct(correct: AnswerValue, submitted: AnswerValue) -> bool:
    """Compare a submitted value against the correct one (same variant)."""
    if isinstance(correct, MultiSelectAnswer):
        if not isinstance(submitted, MultiSelectAnswer) or submitted.tokens is None:
            return False
        return sorted(submitted.tokens) == sorted(correct.tokens or ())
    if isinstance(correct, TextAnswer):
        if not isinstance(submitted, TextAnswer):
            return False
        return submitted.text.strip().lower() == correct.text.strip().lower()
    if not isinstance(submitted, ChoiceAnswer):
        return False
    return submitted.token == correct.token


# ── Scoring ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class NegativeMarking:
    enabled: bool = False
    points_per_wrong: float = 0.0

    @property
    def penalty(self) -> float:
        if self.enabled and self.points_per_wrong:
            return float(self.points_per_wrong)
        return 0.0


@dataclass(frozen=True)
class QuestionResult:
    question_id: uuid.UUID
    user_answer: str
    is_correct: bool
    points_earned: float


@dataclass(frozen=True)
class ScoreResult:
    total_score: float  # Σ points earned, may be negative
    total_points: int
    score: int  # percentage of total_points, not clamped
    correct_count: int
    total_count: int
    results: tuple[QuestionResult, ...]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage(total_score: float, total_points: int) -> int:
    if total_points <= 0:
        return 0
    return _round_half_up(total_score * 100 / total_points)


def score(
    questions: Iterable[ScorableQuestion],
    answers: Mapping[uuid.UUID, Any],
    negative_marking: NegativeMarking | None = None,
) -> ScoreResult:
    """Score *answers* (question id → raw value) against *questions*."""
    penalty = (negative_marking or NegativeMarking()).penalty
    ordered = sorted(questions, key=lambda q: (q.order, str(q.question_id)))

    results: list[QuestionResult] = []
    total_score = 0.0
    total_points = 0
    correct_count = 0

    for question in ordered:
        raw = encode_raw_answer(answers.get(question.question_id, ""))
        submitted = decode_answer(question.question_type, raw)
        correct = is_correct(question.correct, submitted)

        total_points += question.points
        if correct:
            earned = float(question.points)
            correct_count += 1
        else:
            earned = -penalty if penalty else 0.0
        total_score += earned

        results.append(
            QuestionResult(
                question_id=question.question_id,
                user_answer=raw,
                is_correct=correct,
                points_earned=earned,
            )
        )

    return ScoreResult(
        total_score=total_score,
        total_points=total_points,
        score=percentage(total_score, total_points),
        correct_count=correct_count,
        total_count=len(results),
        results=tuple(results),
    )
