"""Evaluation routes: poll-before-start metadata, start-or-resume, history."""

import logging
import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from quizportal.api.deps import Principal, get_student
from quizportal.db.models import AttemptStatusEnum, Evaluation
from quizportal.db.session import get_db
from quizportal.schemas.evaluation import (
    AdmissionStatus,
    AttemptHistoryItem,
    EvaluationSummary,
    HistoryResponse,
    HistoryStats,
    MetadataResponse,
    StartRequest,
    StartResponse,
)
from quizportal.services import admission, attempts, integrity, store

logger = logging.getLogger(__name__)
router = APIRouter()


def evaluation_summary(evaluation: Evaluation, question_count: int) -> EvaluationSummary:
    return EvaluationSummary(
        id=evaluation.id,
        kind=evaluation.kind.value,
        title=evaluation.title,
        description=evaluation.description,
        time_limit_seconds=evaluation.time_limit_seconds,
        start_time=evaluation.start_time,
        end_time=evaluation.end_time,
        max_attempts=evaluation.max_attempts,
        max_violations=integrity.max_violations(evaluation),
        negative_marking=evaluation.negative_marking,
        negative_points=evaluation.negative_points or 0.0,
        random_order=evaluation.random_order,
        show_answers_after_submit=evaluation.show_answers_after_submit,
        check_answer_enabled=evaluation.check_answer_enabled,
        disable_copy_paste=evaluation.disable_copy_paste,
        requires_access_key=bool(evaluation.access_key_hash),
        question_count=question_count,
    )


@router.get("/{evaluation_id}/metadata", response_model=MetadataResponse)
def get_metadata(
    evaluation_id: uuid.UUID,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    """Admission preview for the lobby screen. Read-only, safe to poll."""
    evaluation = store.get_evaluation(db, evaluation_id)
    refs = store.get_question_refs(db, evaluation.id)

    existing = store.find_in_progress_attempt(db, evaluation.id, principal.user_id)
    if existing is not None:
        decision = admission.can_resume(
            db, evaluation, principal.user_id, existing
        )
    else:
        decision = admission.can_start(
            db, evaluation, principal.user_id, verify_key=False
        )

    violation_count = store.count_violations(db, existing.id) if existing else 0
    return MetadataResponse(
        evaluation=evaluation_summary(evaluation, len(refs)),
        admission=AdmissionStatus(
            can_attempt=decision.allowed,
            reason="ready" if decision.allowed else decision.reason,
            is_enrolled=store.is_enrolled(db, evaluation.id, principal.user_id),
            has_existing_attempt=existing is not None,
            existing_attempt_id=existing.id if existing else None,
            completed_attempts=store.count_submitted_attempts(
                db, evaluation.id, principal.user_id
            ),
        ),
        violation_count=violation_count,
    )


@router.post("/{evaluation_id}/start", response_model=StartResponse)
def start_attempt(
    evaluation_id: uuid.UUID,
    response: Response,
    body: StartRequest | None = None,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    """Start a new attempt, or return the caller's in-progress one.

    Responds 201 when a new attempt is created and 200 on resume.
    """
    result = attempts.start_or_resume(
        db,
        evaluation_id,
        principal.user_id,
        access_key=body.access_key if body else None,
    )
    if not result.resumed:
        response.status_code = status.HTTP_201_CREATED
    return StartResponse(
        attempt_id=result.attempt.id,
        status=result.attempt.status.value,
        resumed=result.resumed,
        started_at=result.attempt.started_at,
    )


@router.get("/{evaluation_id}/history", response_model=HistoryResponse)
def get_history(
    evaluation_id: uuid.UUID,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    """The caller's attempts at an evaluation, newest first, with totals."""
    evaluation = store.get_evaluation(db, evaluation_id)
    refs = store.get_question_refs(db, evaluation.id)
    rows = store.list_user_attempts(db, evaluation.id, principal.user_id)

    completed = [a for a in rows if a.status == AttemptStatusEnum.SUBMITTED]
    in_progress = [a for a in rows if a.status == AttemptStatusEnum.IN_PROGRESS]
    scores = [a.score or 0 for a in completed]

    stats = HistoryStats(
        total_attempts=len(rows),
        completed_attempts=len(completed),
        in_progress_attempts=len(in_progress),
        best_score=max(scores) if scores else None,
        average_score=round(sum(scores) / len(scores), 2) if scores else None,
        total_time_taken_seconds=(
            sum(a.time_taken_seconds or 0 for a in completed) if completed else None
        ),
        remaining_attempts=(
            max(0, evaluation.max_attempts - len(completed))
            if evaluation.max_attempts is not None
            else None
        ),
    )
    items = [
        AttemptHistoryItem(
            id=a.id,
            status=a.status.value,
            score=a.score,
            total_points=a.total_points,
            time_taken_seconds=a.time_taken_seconds,
            started_at=a.started_at,
            submitted_at=a.submitted_at,
            is_auto_submitted=a.is_auto_submitted,
            can_view_results=(
                a.status == AttemptStatusEnum.SUBMITTED
                and evaluation.show_answers_after_submit
            ),
        )
        for a in rows
    ]
    return HistoryResponse(
        evaluation=evaluation_summary(evaluation, len(refs)),
        stats=stats,
        attempts=items,
    )
