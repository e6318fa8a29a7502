"""Attempt routes: take view, autosave, violations, submit, result."""

import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizportal.api.deps import Principal, get_student, require_attempt_rate_limit
from quizportal.api.evaluations import evaluation_summary
from quizportal.core.clock import as_utc, utcnow
from quizportal.core.errors import NotSubmitted
from quizportal.db.models import AttemptStatusEnum
from quizportal.db.session import get_db
from quizportal.schemas.attempt import (
    ResultQuestion,
    ResultView,
    SaveRequest,
    SaveResponse,
    SubmitRequest,
    SubmitResponse,
    TakeQuestion,
    TakeView,
    ViolationHistoryResponse,
    ViolationRequest,
    ViolationResponse,
)
from quizportal.services import attempts, integrity, presentation, store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{attempt_id}", response_model=TakeView)
def get_attempt(
    attempt_id: uuid.UUID,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    """Questions, saved answers and remaining time for an attempt.

    Correct answers are withheld unless the evaluation enables answer checking.
    """
    attempt = store.get_owned_attempt(db, attempt_id, principal.user_id)
    evaluation = attempt.evaluation
    refs = store.get_question_refs(db, evaluation.id)

    questions = []
    for index, ref in enumerate(refs):
        q = ref.question
        questions.append(
            TakeQuestion(
                id=q.id,
                title=q.title or f"Question {index + 1}",
                content=q.content,
                type=q.type.value,
                options=presentation.parse_options(q.options),
                points=ref.points,
                order=ref.position,
                display_order=index + 1,
                correct_answer=q.correct_answer if evaluation.check_answer_enabled else None,
            )
        )

    if evaluation.random_order:
        rng = presentation.attempt_rng(attempt.id)
        questions = presentation.seeded_shuffle(questions, rng)
        questions = [
            q.model_copy(
                update={
                    "options": presentation.seeded_shuffle(q.options, rng),
                    "display_order": position + 1,
                }
            )
            for position, q in enumerate(questions)
        ]

    time_remaining = None
    is_expired = False
    if evaluation.time_limit_seconds:
        elapsed = (utcnow() - as_utc(attempt.started_at)).total_seconds()
        time_remaining = max(0, int(evaluation.time_limit_seconds - elapsed))
        is_expired = (
            attempt.status == AttemptStatusEnum.IN_PROGRESS and time_remaining == 0
        )

    return TakeView(
        attempt_id=attempt.id,
        status=attempt.status.value,
        evaluation=evaluation_summary(evaluation, len(refs)),
        questions=questions,
        answers={str(qid): row.user_answer for qid, row in store.load_answers(db, attempt.id).items()},
        started_at=attempt.started_at,
        time_remaining_seconds=time_remaining,
        is_expired=is_expired,
        violation_count=store.count_violations(db, attempt.id),
    )


@router.post("/{attempt_id}/save", response_model=SaveResponse)
def save_answers(
    attempt_id: uuid.UUID,
    body: SaveRequest,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
    _rl: None = Depends(require_attempt_rate_limit),
):
    """Autosave raw answers. Grading happens only at submission."""
    result = attempts.save_answers(db, attempt_id, principal.user_id, body.answers)
    return SaveResponse(
        attempt_id=result.attempt_id,
        saved_count=result.saved,
        updated_count=result.updated,
        skipped_count=result.skipped,
        saved_at=result.saved_at,
    )


@router.post("/{attempt_id}/violations", response_model=ViolationResponse)
def record_violation(
    attempt_id: uuid.UUID,
    body: ViolationRequest | None = None,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
    _rl: None = Depends(require_attempt_rate_limit),
):
    """Record a tab switch (or other proctoring event) on an open attempt."""
    body = body or ViolationRequest()
    result = integrity.record_violation(
        db,
        attempt_id,
        principal.user_id,
        body.evaluation_id,
        violation_type=body.violation_type,
    )
    return ViolationResponse(
        current_count=result.current_count,
        max_count=result.max_count,
        remaining=result.remaining,
        should_auto_submit=result.should_auto_submit,
    )


@router.get("/{attempt_id}/violations", response_model=ViolationHistoryResponse)
def list_violations(
    attempt_id: uuid.UUID,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    history = integrity.violation_history(db, attempt_id, principal.user_id)
    return ViolationHistoryResponse(
        attempt_id=history.attempt_id,
        evaluation_id=history.evaluation_id,
        current_count=history.summary.current_count,
        max_count=history.summary.max_count,
        remaining=history.summary.remaining,
        should_auto_submit=history.summary.should_auto_submit,
        timestamps=history.timestamps,
    )


@router.post("/{attempt_id}/submit", response_model=SubmitResponse)
def submit_attempt(
    attempt_id: uuid.UUID,
    body: SubmitRequest | None = None,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    """Grade and close the attempt. A second submit is refused with 409."""
    body = body or SubmitRequest()
    result = attempts.submit_attempt(
        db,
        attempt_id,
        principal.user_id,
        body.answers,
        auto=body.auto_submitted,
    )
    return SubmitResponse(
        attempt_id=result.attempt_id,
        score=result.score,
        total_points=result.total_points,
        points_earned=result.points_earned,
        time_taken_seconds=result.time_taken_seconds,
        correct_count=result.correct_count,
        total_count=result.total_count,
        submitted_at=result.submitted_at,
        is_auto_submitted=result.is_auto_submitted,
    )


@router.get("/{attempt_id}/result", response_model=ResultView)
def get_result(
    attempt_id: uuid.UUID,
    principal: Principal = Depends(get_student),
    db: Session = Depends(get_db),
):
    """Score of a submitted attempt; per-question review only if the evaluation allows it."""
    attempt = store.get_owned_attempt(db, attempt_id, principal.user_id)
    if attempt.status != AttemptStatusEnum.SUBMITTED:
        raise NotSubmitted()
    evaluation = attempt.evaluation

    view = ResultView(
        attempt_id=attempt.id,
        evaluation_id=evaluation.id,
        title=evaluation.title,
        score=attempt.score,
        total_points=attempt.total_points,
        points_earned=attempt.points_earned,
        correct_count=attempt.correct_count,
        time_taken_seconds=attempt.time_taken_seconds,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
        is_auto_submitted=attempt.is_auto_submitted,
        show_answers=evaluation.show_answers_after_submit,
    )
    if not evaluation.show_answers_after_submit:
        return view

    answers = store.load_answers(db, attempt.id)
    questions = []
    for index, ref in enumerate(store.get_question_refs(db, evaluation.id)):
        q = ref.question
        answer = answers.get(q.id)
        questions.append(
            ResultQuestion(
                id=q.id,
                title=q.title or f"Question {index + 1}",
                content=q.content,
                type=q.type.value,
                options=presentation.parse_options(q.options),
                points=ref.points,
                order=ref.position,
                explanation=q.explanation or "",
                user_answer=answer.user_answer if answer else "",
                correct_answer=q.correct_answer,
                is_correct=bool(answer and answer.is_correct),
                points_earned=(answer.points_earned or 0.0) if answer else 0.0,
            )
        )
    view.questions = questions
    return view
