"""Evaluation-level schemas: metadata, start-or-resume, history."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class EvaluationSummary(BaseModel):
    """Public view of a quiz/assessment. The access key itself is never exposed."""

    id: uuid.UUID
    kind: str
    title: str
    description: str | None = None
    time_limit_seconds: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    max_attempts: int | None = None
    max_violations: int
    negative_marking: bool = False
    negative_points: float = 0.0
    random_order: bool = False
    show_answers_after_submit: bool = False
    check_answer_enabled: bool = False
    disable_copy_paste: bool = False
    requires_access_key: bool = False
    question_count: int = 0


class StartRequest(BaseModel):
    """POST /api/evaluations/{id}/start"""

    access_key: str | None = None


class StartResponse(BaseModel):
    attempt_id: uuid.UUID
    status: str
    resumed: bool
    started_at: datetime


class AdmissionStatus(BaseModel):
    """Poll-before-start answer; computed without side effects."""

    can_attempt: bool
    reason: str
    is_enrolled: bool
    has_existing_attempt: bool
    existing_attempt_id: uuid.UUID | None = None
    completed_attempts: int


class MetadataResponse(BaseModel):
    evaluation: EvaluationSummary
    admission: AdmissionStatus
    violation_count: int = 0


class AttemptHistoryItem(BaseModel):
    id: uuid.UUID
    status: str
    score: int | None = None
    total_points: int
    time_taken_seconds: int | None = None
    started_at: datetime
    submitted_at: datetime | None = None
    is_auto_submitted: bool = False
    can_view_results: bool = False


class HistoryStats(BaseModel):
    total_attempts: int
    completed_attempts: int
    in_progress_attempts: int
    best_score: int | None = None
    average_score: float | None = None
    total_time_taken_seconds: int | None = None
    remaining_attempts: int | None = None


class HistoryResponse(BaseModel):
    evaluation: EvaluationSummary
    stats: HistoryStats
    attempts: list[AttemptHistoryItem] = []
