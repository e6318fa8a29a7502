"""Admission control for starting and resuming attempts.

``can_start`` rules, first failure wins:
  1. evaluation must be ACTIVE                        → not_active
  2. now < start_time                                 → not_started
     now > start_time + late-join grace               → window_expired
  3. now > end_time                                   → expired
  4. enrollment records exist and caller has none     → not_enrolled
     (no enrollment records at all means open to all)
     access key set and not matching                  → invalid_access_key
  5. submitted attempts >= max_attempts               → attempts_exhausted
  6. an IN_PROGRESS attempt exists                    → allowed, attempt returned

``can_resume`` re-checks status, end_time and enrollment, then anchors the
continue window at the attempt's own ``started_at``. A revoked enrollment
denies the resume but leaves the attempt IN_PROGRESS.

Both are pure reads and safe to poll.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from quizportal.config import settings
from quizportal.core.clock import as_utc, utcnow
from quizportal.core.errors import AdmissionReason
from quizportal.core.security import verify_access_key
from quizportal.db.models import (
    Attempt,
    Evaluation,
    EvaluationKindEnum,
    EvaluationStatusEnum,
)
from quizportal.services import store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason: str | None = None
    attempt: Attempt | None = None  # in-progress attempt to resume, if any

    @classmethod
    def deny(cls, reason: str) -> "AdmissionDecision":
        return cls(allowed=False, reason=reason)


def late_join_grace(evaluation: Evaluation) -> timedelta:
    """How long after ``start_time`` a new attempt may still begin."""
    if evaluation.late_join_grace_minutes is not None:
        minutes = evaluation.late_join_grace_minutes
    elif evaluation.kind == EvaluationKindEnum.ASSESSMENT:
        minutes = settings.ASSESSMENT_LATE_JOIN_GRACE_MINUTES
    else:
        minutes = settings.QUIZ_LATE_JOIN_GRACE_MINUTES
    return timedelta(minutes=minutes)


def resume_deadline(evaluation: Evaluation, attempt: Attempt) -> datetime | None:
    """Latest instant the attempt can be continued, None when untimed."""
    if not evaluation.time_limit_seconds:
        return None
    return as_utc(attempt.started_at) + timedelta(
        seconds=evaluation.time_limit_seconds + settings.RESUME_GRACE_SECONDS
    )


def _check_window(evaluation: Evaluation, now: datetime) -> str | None:
    start_time = as_utc(evaluation.start_time)
    if start_time is not None:
        if now < start_time:
            return AdmissionReason.NOT_STARTED
        if now > start_time + late_join_grace(evaluation):
            return AdmissionReason.WINDOW_EXPIRED
    end_time = as_utc(evaluation.end_time)
    if end_time is not None and now > end_time:
        return AdmissionReason.EXPIRED
    return None


def can_start(
    db: Session,
    evaluation: Evaluation,
    user_id: uuid.UUID,
    *,
    access_key: str | None = None,
    verify_key: bool = True,
    now: datetime | None = None,
) -> AdmissionDecision:
    """Decide whether *user_id* may start (or resume into) *evaluation*.

    ``verify_key=False`` skips the access-key check, for previews that run
    before the student has typed a key.
    """
    now = now or utcnow()

    if evaluation.status != EvaluationStatusEnum.ACTIVE:
        return AdmissionDecision.deny(AdmissionReason.NOT_ACTIVE)

    reason = _check_window(evaluation, now)
    if reason is not None:
        return AdmissionDecision.deny(reason)

    if store.has_any_enrollments(db, evaluation.id) and not store.is_enrolled(
        db, evaluation.id, user_id
    ):
        return AdmissionDecision.deny(AdmissionReason.NOT_ENROLLED)

    if (
        verify_key
        and evaluation.access_key_hash
        and not verify_access_key(access_key, evaluation.access_key_hash)
    ):
        return AdmissionDecision.deny(AdmissionReason.INVALID_ACCESS_KEY)

    if evaluation.max_attempts is not None:
        submitted = store.count_submitted_attempts(db, evaluation.id, user_id)
        if submitted >= evaluation.max_attempts:
            return AdmissionDecision.deny(AdmissionReason.ATTEMPTS_EXHAUSTED)

    existing = store.find_in_progress_attempt(db, evaluation.id, user_id)
    return AdmissionDecision(allowed=True, attempt=existing)


def can_resume(
    db: Session,
    evaluation: Evaluation,
    user_id: uuid.UUID,
    attempt: Attempt,
    *,
    now: datetime | None = None,
) -> AdmissionDecision:
    """Decide whether an existing IN_PROGRESS *attempt* may be continued."""
    now = now or utcnow()

    if evaluation.status != EvaluationStatusEnum.ACTIVE:
        return AdmissionDecision.deny(AdmissionReason.NOT_ACTIVE)

    end_time = as_utc(evaluation.end_time)
    if end_time is not None and now > end_time:
        return AdmissionDecision.deny(AdmissionReason.EXPIRED)

    if store.has_any_enrollments(db, evaluation.id) and not store.is_enrolled(
        db, evaluation.id, user_id
    ):
        return AdmissionDecision.deny(AdmissionReason.NOT_ENROLLED)

    deadline = resume_deadline(evaluation, attempt)
    if deadline is not None and now > deadline:
        return AdmissionDecision.deny(AdmissionReason.WINDOW_EXPIRED)

    return AdmissionDecision(allowed=True, attempt=attempt)
