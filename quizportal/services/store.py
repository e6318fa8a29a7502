"""Data access for the attempt core.

Read-only lookups against the collaborators (evaluations, question bank,
enrollment registry) plus the attempt/answer/violation reads shared by the
admission, attempt and integrity services.
"""

import uuid
from typing import Any

from sqlalchemy.orm import Session, joinedload

from quizportal.core.errors import NotFound, OwnershipViolation
from quizportal.db.models import (
    Attempt,
    AttemptAnswer,
    AttemptStatusEnum,
    Enrollment,
    Evaluation,
    EvaluationQuestion,
    Violation,
)

ATTEMPT_NOT_FOUND = "Attempt not found"


def coerce_uuid(value: Any) -> uuid.UUID | None:
    """Parse a client-supplied id, returning None when it is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


# ── Collaborator reads ───────────────────────────────────────────────────────


def get_evaluation(db: Session, evaluation_id: uuid.UUID) -> Evaluation:
    evaluation = db.query(Evaluation).filter(Evaluation.id == evaluation_id).first()
    if evaluation is None:
        raise NotFound("Evaluation not found")
    return evaluation


def get_question_refs(db: Session, evaluation_id: uuid.UUID) -> list[EvaluationQuestion]:
    """Evaluation questions in display order, with the question row loaded."""
    return (
        db.query(EvaluationQuestion)
        .options(joinedload(EvaluationQuestion.question))
        .filter(EvaluationQuestion.evaluation_id == evaluation_id)
        .order_by(EvaluationQuestion.position, EvaluationQuestion.id)
        .all()
    )


def is_enrolled(db: Session, evaluation_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    return (
        db.query(Enrollment.id)
        .filter(
            Enrollment.evaluation_id == evaluation_id,
            Enrollment.user_id == user_id,
        )
        .first()
        is not None
    )


def has_any_enrollments(db: Session, evaluation_id: uuid.UUID) -> bool:
    return (
        db.query(Enrollment.id)
        .filter(Enrollment.evaluation_id == evaluation_id)
        .first()
        is not None
    )


def count_submitted_attempts(
    db: Session, evaluation_id: uuid.UUID, user_id: uuid.UUID
) -> int:
    return (
        db.query(Attempt)
        .filter(
            Attempt.evaluation_id == evaluation_id,
            Attempt.user_id == user_id,
            Attempt.status == AttemptStatusEnum.SUBMITTED,
        )
        .count()
    )


# ── Attempt store reads ──────────────────────────────────────────────────────


def find_in_progress_attempt(
    db: Session, evaluation_id: uuid.UUID, user_id: uuid.UUID
) -> Attempt | None:
    return (
        db.query(Attempt)
        .filter(
            Attempt.evaluation_id == evaluation_id,
            Attempt.user_id == user_id,
            Attempt.status == AttemptStatusEnum.IN_PROGRESS,
        )
        .first()
    )


def get_owned_attempt(
    db: Session,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Attempt:
    """Load an attempt the caller owns.

    With ``for_update`` the row is locked (``SELECT … FOR UPDATE``) for the rest
    of the transaction, serializing mutations per attempt.
    Raises ``NotFound`` / ``OwnershipViolation``; both render identically.
    """
    query = db.query(Attempt).filter(Attempt.id == attempt_id)
    if for_update:
        query = query.with_for_update()
    attempt = query.first()
    if attempt is None:
        raise NotFound(ATTEMPT_NOT_FOUND)
    if attempt.user_id != user_id:
        raise OwnershipViolation(ATTEMPT_NOT_FOUND)
    return attempt


def load_answers(db: Session, attempt_id: uuid.UUID) -> dict[uuid.UUID, AttemptAnswer]:
    rows = db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt_id).all()
    return {row.question_id: row for row in rows}


def count_violations(db: Session, attempt_id: uuid.UUID) -> int:
    return db.query(Violation).filter(Violation.attempt_id == attempt_id).count()


def list_violations(db: Session, attempt_id: uuid.UUID) -> list[Violation]:
    return (
        db.query(Violation)
        .filter(Violation.attempt_id == attempt_id)
        .order_by(Violation.created_at)
        .all()
    )


def list_user_attempts(
    db: Session, evaluation_id: uuid.UUID, user_id: uuid.UUID
) -> list[Attempt]:
    return (
        db.query(Attempt)
        .filter(Attempt.evaluation_id == evaluation_id, Attempt.user_id == user_id)
        .order_by(Attempt.started_at.desc())
        .all()
    )
