"""Attempt lifecycle service: start/resume, autosave, submit."""

import json
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import create_evaluation, question_ids, utc
from quizportal.core.clock import as_utc
from quizportal.core.errors import (
    AdmissionDenied,
    AdmissionReason,
    AlreadyInProgress,
    AlreadySubmitted,
    NotFound,
    OwnershipViolation,
)
from quizportal.db.models import (
    Attempt,
    AttemptAnswer,
    AttemptStatusEnum,
    Enrollment,
    QuestionTypeEnum,
)
from quizportal.services import attempts, store
from quizportal.services.scoring import QuestionDataError


def _answers(db: Session, attempt_id) -> dict:
    rows = db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt_id).all()
    return {row.question_id: row for row in rows}


# ── start / resume ────────────────────────────────────────────────────────────


class TestStartOrResume:
    def test_creates_attempt(self, db, quiz, student_id):
        result = attempts.start_or_resume(db, quiz.id, student_id)
        assert not result.resumed
        assert result.attempt.status == AttemptStatusEnum.IN_PROGRESS
        assert result.attempt.total_points == 4

    def test_second_start_resumes_same_attempt(self, db, quiz, student_id):
        first = attempts.start_or_resume(db, quiz.id, student_id)
        second = attempts.start_or_resume(db, quiz.id, student_id)
        assert second.resumed
        assert second.attempt.id == first.attempt.id
        assert db.query(Attempt).count() == 1

    def test_denied_start_raises_with_reason(self, db, student_id):
        evaluation = create_evaluation(db, enrolled=[uuid.uuid4()])
        with pytest.raises(AdmissionDenied) as exc:
            attempts.start_or_resume(db, evaluation.id, student_id)
        assert exc.value.reason == AdmissionReason.NOT_ENROLLED
        assert exc.value.status_code == 403

    def test_unknown_evaluation(self, db, student_id):
        with pytest.raises(NotFound):
            attempts.start_or_resume(db, uuid.uuid4(), student_id)

    def test_new_attempt_after_submission(self, db, quiz, student_id):
        first = attempts.start_or_resume(db, quiz.id, student_id).attempt
        attempts.submit_attempt(db, first.id, student_id)
        second = attempts.start_or_resume(db, quiz.id, student_id)
        assert not second.resumed
        assert second.attempt.id != first.id

    def test_lapsed_attempt_is_finalized(self, db, student_id):
        evaluation = create_evaluation(db, time_limit_seconds=60)
        attempt = attempts.start_or_resume(
            db, evaluation.id, student_id, now=utc(-5)
        ).attempt

        with pytest.raises(AdmissionDenied) as exc:
            attempts.start_or_resume(db, evaluation.id, student_id)

        assert exc.value.reason == AdmissionReason.WINDOW_EXPIRED
        assert exc.value.details == {"finalized_attempt_id": str(attempt.id)}
        db.refresh(attempt)
        assert attempt.status == AttemptStatusEnum.SUBMITTED
        assert attempt.is_auto_submitted is True

    def test_revoked_enrollment_denies_resume_without_finalizing(self, db, student_id):
        evaluation = create_evaluation(db, enrolled=[student_id, uuid.uuid4()])
        attempt = attempts.start_or_resume(db, evaluation.id, student_id).attempt
        db.query(Enrollment).filter(Enrollment.user_id == student_id).delete()
        db.commit()

        with pytest.raises(AdmissionDenied) as exc:
            attempts.start_or_resume(db, evaluation.id, student_id)

        assert exc.value.reason == AdmissionReason.NOT_ENROLLED
        assert exc.value.details is None
        db.refresh(attempt)
        assert attempt.status == AttemptStatusEnum.IN_PROGRESS


class TestCreateAttempt:
    def test_refuses_second_in_progress(self, db, quiz, student_id):
        attempts.create_attempt(db, quiz, student_id)
        with pytest.raises(AlreadyInProgress):
            attempts.create_attempt(db, quiz, student_id)

    def test_partial_index_rejects_duplicate_insert(self, db, quiz, student_id):
        db.add(Attempt(evaluation_id=quiz.id, user_id=student_id))
        db.commit()
        db.add(Attempt(evaluation_id=quiz.id, user_id=student_id))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_zero_point_question_counts_as_one(self, db, student_id):
        questions = [
            {"type": QuestionTypeEnum.FILL_IN_BLANK, "content": "Q1", "correct_answer": "x"},
            {
                "type": QuestionTypeEnum.FILL_IN_BLANK,
                "content": "Q2",
                "correct_answer": "y",
                "points": 0,
            },
        ]
        evaluation = create_evaluation(db, questions=questions)
        attempt = attempts.create_attempt(db, evaluation, student_id)
        assert attempt.total_points == 2

    def test_submitted_attempts_do_not_block(self, db, quiz, student_id):
        db.add(
            Attempt(
                evaluation_id=quiz.id,
                user_id=student_id,
                status=AttemptStatusEnum.SUBMITTED,
            )
        )
        db.commit()
        attempt = attempts.create_attempt(db, quiz, student_id)
        assert attempt.status == AttemptStatusEnum.IN_PROGRESS


# ── autosave ──────────────────────────────────────────────────────────────────


class TestSaveAnswers:
    def test_saves_and_updates(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        q1, q2, q3, _ = question_ids(quiz)

        first = attempts.save_answers(db, attempt.id, student_id, {str(q1): "b"})
        second = attempts.save_answers(
            db, attempt.id, student_id, {str(q1): "a", str(q3): ["c", "a"]}
        )

        assert (first.saved, first.updated) == (1, 0)
        assert (second.saved, second.updated) == (1, 1)
        rows = _answers(db, attempt.id)
        assert rows[q1].user_answer == "a"
        assert json.loads(rows[q3].user_answer) == ["c", "a"]
        assert rows[q1].is_correct is None  # not graded on save

    def test_unknown_question_ids_are_skipped(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        q1 = question_ids(quiz)[0]
        result = attempts.save_answers(
            db,
            attempt.id,
            student_id,
            {str(q1): "a", str(uuid.uuid4()): "x", "not-a-uuid": "y"},
        )
        assert result.saved == 1
        assert result.skipped == 2
        assert set(_answers(db, attempt.id)) == {q1}

    def test_save_after_submit_is_rejected(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        attempts.submit_attempt(db, attempt.id, student_id)
        with pytest.raises(AlreadySubmitted):
            attempts.save_answers(db, attempt.id, student_id, {})

    def test_save_by_other_user_is_not_found(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        with pytest.raises(OwnershipViolation):
            attempts.save_answers(db, attempt.id, uuid.uuid4(), {})

    def test_save_after_time_limit_is_accepted(self, db, student_id):
        evaluation = create_evaluation(db, time_limit_seconds=60)
        attempt = attempts.start_or_resume(
            db, evaluation.id, student_id, now=utc(-5)
        ).attempt
        q1 = question_ids(evaluation)[0]
        assert attempts.save_answers(db, attempt.id, student_id, {str(q1): "a"}).saved == 1


# ── submit ────────────────────────────────────────────────────────────────────


class TestSubmitAttempt:
    def test_scores_and_closes(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        q1, q2, q3, q4 = question_ids(quiz)
        attempts.save_answers(db, attempt.id, student_id, {str(q1): "a", str(q2): "False"})

        result = attempts.submit_attempt(
            db, attempt.id, student_id, {str(q3): ["c", "a"], str(q4): " paris "}
        )

        assert result.correct_count == 3
        assert result.total_count == 4
        assert result.score == 75
        assert result.is_auto_submitted is False

        db.refresh(attempt)
        assert attempt.status == AttemptStatusEnum.SUBMITTED
        assert attempt.score == 75
        assert attempt.points_earned == 3.0
        assert attempt.submitted_at is not None

        rows = _answers(db, attempt.id)
        assert set(rows) == {q1, q2, q3, q4}
        assert rows[q2].is_correct is False
        assert rows[q4].is_correct is True

    def test_submitted_answers_override_autosave(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        q1 = question_ids(quiz)[0]
        attempts.save_answers(db, attempt.id, student_id, {str(q1): "b"})
        result = attempts.submit_attempt(db, attempt.id, student_id, {str(q1): "a"})
        assert result.correct_count == 1
        assert _answers(db, attempt.id)[q1].user_answer == "a"

    def test_unanswered_questions_get_rows(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        result = attempts.submit_attempt(db, attempt.id, student_id)
        assert result.score == 0
        rows = _answers(db, attempt.id)
        assert len(rows) == 4
        assert all(row.user_answer == "" and row.is_correct is False for row in rows.values())

    def test_second_submit_conflicts(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        attempts.submit_attempt(db, attempt.id, student_id)
        with pytest.raises(AlreadySubmitted) as exc:
            attempts.submit_attempt(db, attempt.id, student_id)
        assert exc.value.status_code == 409

    def test_time_taken_uses_server_clock(self, db, quiz, student_id):
        started = utc(-10)
        attempt = attempts.start_or_resume(db, quiz.id, student_id, now=started).attempt
        result = attempts.submit_attempt(
            db, attempt.id, student_id, now=started + timedelta(seconds=125)
        )
        assert result.time_taken_seconds == 125

    def test_auto_flag_is_recorded(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        result = attempts.submit_attempt(db, attempt.id, student_id, auto=True)
        assert result.is_auto_submitted
        db.refresh(attempt)
        assert attempt.is_auto_submitted

    def test_negative_marking(self, db, student_id):
        questions = [
            {"type": QuestionTypeEnum.MULTIPLE_CHOICE, "content": f"Q{i}", "correct_answer": "a"}
            for i in range(10)
        ]
        evaluation = create_evaluation(
            db, questions=questions, negative_marking=True, negative_points=0.5
        )
        attempt = attempts.start_or_resume(db, evaluation.id, student_id).attempt
        ids = question_ids(evaluation)
        answers = {str(qid): ("a" if i < 6 else "b") for i, qid in enumerate(ids)}
        result = attempts.submit_attempt(db, attempt.id, student_id, answers)
        assert result.points_earned == pytest.approx(4.0)
        assert result.score == 40

    def test_ownership_violation_looks_like_not_found(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        with pytest.raises(NotFound) as foreign:
            attempts.submit_attempt(db, attempt.id, uuid.uuid4())
        with pytest.raises(NotFound) as missing:
            attempts.submit_attempt(db, uuid.uuid4(), student_id)
        assert foreign.value.message == missing.value.message
        assert foreign.value.error_code == missing.value.error_code

    def test_malformed_question_leaves_attempt_open(self, db, student_id):
        evaluation = create_evaluation(
            db,
            questions=[
                {"type": QuestionTypeEnum.MULTI_SELECT, "content": "broken", "correct_answer": "a,b"}
            ],
        )
        attempt = attempts.start_or_resume(db, evaluation.id, student_id).attempt
        with pytest.raises(QuestionDataError):
            attempts.submit_attempt(db, attempt.id, student_id)
        db.refresh(attempt)
        assert attempt.status == AttemptStatusEnum.IN_PROGRESS

    def test_started_at_is_preserved(self, db, quiz, student_id):
        attempt = attempts.start_or_resume(db, quiz.id, student_id).attempt
        started = as_utc(attempt.started_at)
        attempts.submit_attempt(db, attempt.id, student_id)
        reloaded = store.get_owned_attempt(db, attempt.id, student_id)
        assert as_utc(reloaded.started_at) == started
