"""Attempt lifecycle: create → IN_PROGRESS → SUBMITTED.

Concurrency
-----------
- ``create_attempt`` relies on the partial unique index
  ``uq_attempt_single_in_progress``; a losing concurrent insert surfaces as
  ``AlreadyInProgress`` and ``start_or_resume`` resolves it to the winner.
- ``save_answers`` and ``submit_attempt`` lock the attempt row first, so
  mutations of one attempt run one at a time.
- ``submit_attempt`` flips the status with an UPDATE guarded by
  ``status = IN_PROGRESS``; only one concurrent submit can match it.

Expiry is never persisted. It is computed from ``started_at`` on read.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizportal.core.clock import elapsed_seconds, utcnow
from quizportal.core.errors import (
    AdmissionDenied,
    AdmissionReason,
    AlreadyInProgress,
    AlreadySubmitted,
)
from quizportal.db.models import (
    Attempt,
    AttemptAnswer,
    AttemptStatusEnum,
    Evaluation,
)
from quizportal.services import admission, scoring, store

logger = logging.getLogger(__name__)

# Resume denials that finalize the stale attempt instead of leaving it open.
_LAPSE_REASONS = {AdmissionReason.WINDOW_EXPIRED, AdmissionReason.EXPIRED}


@dataclass(frozen=True)
class StartResult:
    attempt: Attempt
    resumed: bool


@dataclass(frozen=True)
class SaveResult:
    attempt_id: uuid.UUID
    saved: int
    updated: int
    skipped: int
    saved_at: datetime


@dataclass(frozen=True)
class SubmitResult:
    attempt_id: uuid.UUID
    score: int
    points_earned: float
    total_points: int
    time_taken_seconds: int
    correct_count: int
    total_count: int
    submitted_at: datetime
    is_auto_submitted: bool


# ── create / start ───────────────────────────────────────────────────────────


def create_attempt(
    db: Session,
    evaluation: Evaluation,
    user_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> Attempt:
    """Insert a new IN_PROGRESS attempt. Callers run admission first.

    Raises:
        AlreadyInProgress: An active attempt exists for (user, evaluation).
    """
    existing = store.find_in_progress_attempt(db, evaluation.id, user_id)
    if existing is not None:
        raise AlreadyInProgress(details={"attempt_id": str(existing.id)})

    refs = store.get_question_refs(db, evaluation.id)
    attempt = Attempt(
        evaluation_id=evaluation.id,
        user_id=user_id,
        status=AttemptStatusEnum.IN_PROGRESS,
        started_at=now or utcnow(),
        total_points=sum(ref.points or 1 for ref in refs),
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            "Concurrent start lost the race: evaluation=%s user=%s",
            evaluation.id, user_id,
        )
        raise AlreadyInProgress()
    db.refresh(attempt)
    logger.info(
        "Attempt %s created: evaluation=%s user=%s total_points=%d",
        attempt.id, evaluation.id, user_id, attempt.total_points,
    )
    return attempt


def start_or_resume(
    db: Session,
    evaluation_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    access_key: str | None = None,
    now: datetime | None = None,
) -> StartResult:
    """Return the caller's active attempt, or create one if admission allows."""
    now = now or utcnow()
    evaluation = store.get_evaluation(db, evaluation_id)

    existing = store.find_in_progress_attempt(db, evaluation.id, user_id)
    if existing is not None:
        decision = admission.can_resume(db, evaluation, user_id, existing, now=now)
        if decision.allowed:
            logger.info("Attempt %s resumed by user %s", existing.id, user_id)
            return StartResult(attempt=existing, resumed=True)
        details = None
        if decision.reason in _LAPSE_REASONS:
            logger.info(
                "Attempt %s lapsed (%s); finalizing", existing.id, decision.reason
            )
            submit_attempt(db, existing.id, user_id, auto=True, now=now)
            details = {"finalized_attempt_id": str(existing.id)}
        raise AdmissionDenied(decision.reason, details=details)

    decision = admission.can_start(
        db, evaluation, user_id, access_key=access_key, now=now
    )
    if not decision.allowed:
        logger.info(
            "Start denied: evaluation=%s user=%s reason=%s",
            evaluation.id, user_id, decision.reason,
        )
        raise AdmissionDenied(decision.reason)
    if decision.attempt is not None:
        return StartResult(attempt=decision.attempt, resumed=True)

    try:
        attempt = create_attempt(db, evaluation, user_id, now=now)
    except AlreadyInProgress:
        winner = store.find_in_progress_attempt(db, evaluation.id, user_id)
        if winner is None:
            raise
        return StartResult(attempt=winner, resumed=True)
    return StartResult(attempt=attempt, resumed=False)


# ── autosave ─────────────────────────────────────────────────────────────────


def save_answers(
    db: Session,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    answers: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> SaveResult:
    """Upsert raw answers without grading them.

    Question ids that do not belong to the evaluation are skipped, not fatal.
    """
    try:
        attempt = store.get_owned_attempt(db, attempt_id, user_id, for_update=True)
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise AlreadySubmitted()

        valid_ids = {
            ref.question_id for ref in store.get_question_refs(db, attempt.evaluation_id)
        }
        existing = store.load_answers(db, attempt.id)

        saved = updated = skipped = 0
        for key, value in answers.items():
            question_id = store.coerce_uuid(key)
            if question_id is None or question_id not in valid_ids:
                logger.debug("Autosave skipped unknown question %r on %s", key, attempt.id)
                skipped += 1
                continue

            raw = scoring.encode_raw_answer(value)
            row = existing.get(question_id)
            if row is not None:
                row.user_answer = raw
                updated += 1
            else:
                row = AttemptAnswer(
                    attempt_id=attempt.id, question_id=question_id, user_answer=raw
                )
                db.add(row)
                existing[question_id] = row
                saved += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    return SaveResult(
        attempt_id=attempt.id,
        saved=saved,
        updated=updated,
        skipped=skipped,
        saved_at=now or utcnow(),
    )


# ── submit ───────────────────────────────────────────────────────────────────


def _merge_answers(
    stored: Mapping[uuid.UUID, AttemptAnswer],
    submitted: Mapping[str, Any] | None,
    valid_ids: set[uuid.UUID],
) -> dict[uuid.UUID, str]:
    """Autosaved answers overlaid with the ones sent at submission."""
    merged = {qid: row.user_answer for qid, row in stored.items()}
    for key, value in (submitted or {}).items():
        question_id = store.coerce_uuid(key)
        if question_id is not None and question_id in valid_ids:
            merged[question_id] = scoring.encode_raw_answer(value)
    return merged


def submit_attempt(
    db: Session,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    answers: Mapping[str, Any] | None = None,
    *,
    auto: bool = False,
    now: datetime | None = None,
) -> SubmitResult:
    """Score and close an attempt. Manual and forced submissions share this path.

    Raises:
        AlreadySubmitted: The attempt is no longer IN_PROGRESS (never idempotent).

    Any failure rolls back the whole unit, leaving the attempt IN_PROGRESS.
    """
    now = now or utcnow()
    try:
        attempt = store.get_owned_attempt(db, attempt_id, user_id, for_update=True)
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise AlreadySubmitted()

        evaluation = attempt.evaluation
        refs = store.get_question_refs(db, evaluation.id)
        questions = [scoring.load_question(ref) for ref in refs]
        stored = store.load_answers(db, attempt.id)
        merged = _merge_answers(stored, answers, {q.question_id for q in questions})

        result = scoring.score(
            questions,
            merged,
            scoring.NegativeMarking(
                enabled=evaluation.negative_marking,
                points_per_wrong=evaluation.negative_points or 0.0,
            ),
        )

        for item in result.results:
            row = stored.get(item.question_id)
            if row is None:
                row = AttemptAnswer(attempt_id=attempt.id, question_id=item.question_id)
                db.add(row)
            row.user_answer = item.user_answer
            row.is_correct = item.is_correct
            row.points_earned = item.points_earned

        time_taken = elapsed_seconds(attempt.started_at, now)
        flipped = (
            db.query(Attempt)
            .filter(
                Attempt.id == attempt.id,
                Attempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .update(
                {
                    Attempt.status: AttemptStatusEnum.SUBMITTED,
                    Attempt.submitted_at: now,
                    Attempt.score: result.score,
                    Attempt.points_earned: result.total_score,
                    Attempt.total_points: result.total_points,
                    Attempt.correct_count: result.correct_count,
                    Attempt.time_taken_seconds: time_taken,
                    Attempt.is_auto_submitted: auto,
                },
                synchronize_session=False,
            )
        )
        if flipped != 1:
            raise AlreadySubmitted()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.expire(attempt)
    logger.info(
        "Attempt %s %s: score=%d%% (%s/%d) correct=%d/%d time=%ds",
        attempt_id,
        "auto-submitted" if auto else "submitted",
        result.score, result.total_score, result.total_points,
        result.correct_count, result.total_count, time_taken,
    )
    return SubmitResult(
        attempt_id=attempt_id,
        score=result.score,
        points_earned=result.total_score,
        total_points=result.total_points,
        time_taken_seconds=time_taken,
        correct_count=result.correct_count,
        total_count=result.total_count,
        submitted_at=now,
        is_auto_submitted=auto,
    )
