"""Proctoring violation tracking (tab/window switches).

Violations are counted per attempt. Once the count reaches the evaluation's
cap, ``should_auto_submit`` is raised and any further violation is refused
with ``ThresholdExceeded``; the client is expected to submit immediately.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from quizportal.config import settings
from quizportal.core.errors import AlreadySubmitted, NotFound, ThresholdExceeded
from quizportal.db.models import AttemptStatusEnum, Evaluation, Violation
from quizportal.services import store

logger = logging.getLogger(__name__)

TAB_SWITCH = "tab_switch"


@dataclass(frozen=True)
class ViolationResult:
    current_count: int
    max_count: int
    should_auto_submit: bool

    @property
    def remaining(self) -> int:
        return max(0, self.max_count - self.current_count)


@dataclass(frozen=True)
class ViolationHistory:
    attempt_id: uuid.UUID
    evaluation_id: uuid.UUID
    summary: ViolationResult
    timestamps: list[datetime]


def max_violations(evaluation: Evaluation) -> int:
    """Violation cap for *evaluation*; unset (or 0) falls back to the default."""
    return evaluation.max_violations or settings.DEFAULT_MAX_VIOLATIONS


def record_violation(
    db: Session,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    evaluation_id: uuid.UUID | None = None,
    *,
    violation_type: str = TAB_SWITCH,
) -> ViolationResult:
    """Append a violation to an IN_PROGRESS attempt and report the new count.

    Raises:
        NotFound: Attempt missing, not owned, or not part of *evaluation_id*.
        AlreadySubmitted: The attempt is closed.
        ThresholdExceeded: The cap was already reached; nothing is recorded.
    """
    try:
        attempt = store.get_owned_attempt(db, attempt_id, user_id, for_update=True)
        if evaluation_id is not None and attempt.evaluation_id != evaluation_id:
            raise NotFound(store.ATTEMPT_NOT_FOUND)
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise AlreadySubmitted()

        max_count = max_violations(attempt.evaluation)
        current = store.count_violations(db, attempt.id)
        if current >= max_count:
            raise ThresholdExceeded(
                details={
                    "current_count": current,
                    "max_count": max_count,
                    "should_auto_submit": True,
                }
            )

        db.add(
            Violation(
                attempt_id=attempt.id,
                user_id=user_id,
                evaluation_id=attempt.evaluation_id,
                violation_type=violation_type,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    new_count = current + 1
    result = ViolationResult(
        current_count=new_count,
        max_count=max_count,
        should_auto_submit=new_count >= max_count,
    )
    if result.should_auto_submit:
        logger.info(
            "Attempt %s reached violation cap (%d/%d)", attempt_id, new_count, max_count
        )
    else:
        logger.info(
            "Violation %s on attempt %s (%d/%d)",
            violation_type, attempt_id, new_count, max_count,
        )
    return result


def violation_history(
    db: Session, attempt_id: uuid.UUID, user_id: uuid.UUID
) -> ViolationHistory:
    attempt = store.get_owned_attempt(db, attempt_id, user_id)
    rows = store.list_violations(db, attempt.id)
    max_count = max_violations(attempt.evaluation)
    return ViolationHistory(
        attempt_id=attempt.id,
        evaluation_id=attempt.evaluation_id,
        summary=ViolationResult(
            current_count=len(rows),
            max_count=max_count,
            should_auto_submit=len(rows) >= max_count,
        ),
        timestamps=[row.created_at for row in rows],
    )
