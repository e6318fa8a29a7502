"""Attempt schemas: take view, autosave, violations, submit, result."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from quizportal.schemas.evaluation import EvaluationSummary


class SaveRequest(BaseModel):
    """POST /api/attempts/{id}/save with {question_id: answer}; arrays allowed for multi-select."""

    answers: dict[str, Any]


class SaveResponse(BaseModel):
    attempt_id: uuid.UUID
    saved_count: int
    updated_count: int
    skipped_count: int
    saved_at: datetime


class SubmitRequest(BaseModel):
    """POST /api/attempts/{id}/submit. Answers here override autosaved ones."""

    answers: dict[str, Any] = {}
    auto_submitted: bool = False  # client timer expired or violation cap reached


class SubmitResponse(BaseModel):
    attempt_id: uuid.UUID
    score: int
    total_points: int
    points_earned: float
    time_taken_seconds: int
    correct_count: int
    total_count: int
    submitted_at: datetime
    is_auto_submitted: bool


class ViolationRequest(BaseModel):
    """POST /api/attempts/{id}/violations"""

    evaluation_id: uuid.UUID | None = None
    violation_type: str = Field("tab_switch", min_length=1, max_length=50)


class ViolationResponse(BaseModel):
    current_count: int
    max_count: int
    remaining: int
    should_auto_submit: bool


class ViolationHistoryResponse(ViolationResponse):
    attempt_id: uuid.UUID
    evaluation_id: uuid.UUID
    timestamps: list[datetime] = []


class TakeQuestion(BaseModel):
    """A question as shown while the attempt is open."""

    id: uuid.UUID
    title: str
    content: str
    type: str
    options: list[str] = []
    points: int
    order: int
    display_order: int
    correct_answer: str | None = None  # only when check_answer_enabled


class TakeView(BaseModel):
    attempt_id: uuid.UUID
    status: str
    evaluation: EvaluationSummary
    questions: list[TakeQuestion]
    answers: dict[str, str] = {}
    started_at: datetime
    time_remaining_seconds: int | None = None
    is_expired: bool = False
    violation_count: int = 0


class ResultQuestion(BaseModel):
    id: uuid.UUID
    title: str
    content: str
    type: str
    options: list[str] = []
    points: int
    order: int
    explanation: str = ""
    user_answer: str = ""
    correct_answer: str
    is_correct: bool = False
    points_earned: float = 0.0


class ResultView(BaseModel):
    attempt_id: uuid.UUID
    evaluation_id: uuid.UUID
    title: str
    score: int | None = None
    total_points: int
    points_earned: float | None = None
    correct_count: int | None = None
    time_taken_seconds: int | None = None
    started_at: datetime
    submitted_at: datetime | None = None
    is_auto_submitted: bool = False
    show_answers: bool = False
    questions: list[ResultQuestion] | None = None
