"""Concurrent start and submit against a file-backed SQLite database.

Each worker uses its own session, the way separate requests would.
"""

import threading
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import create_evaluation, question_ids
from quizportal.core.errors import AlreadySubmitted
from quizportal.db.models import Attempt, AttemptStatusEnum
from quizportal.db.session import Base
from quizportal.services import attempts


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


def _run_concurrently(n, target):
    barrier = threading.Barrier(n)
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            value = target()
        except Exception as e:
            with lock:
                errors.append(e)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results, errors


def test_concurrent_starts_yield_one_attempt(session_factory):
    user_id = uuid.uuid4()
    with session_factory() as db:
        evaluation_id = create_evaluation(db).id

    def start():
        with session_factory() as db:
            return attempts.start_or_resume(db, evaluation_id, user_id).attempt.id

    results, errors = _run_concurrently(4, start)

    assert errors == []
    assert len(set(results)) == 1
    with session_factory() as db:
        rows = db.query(Attempt).filter(Attempt.user_id == user_id).all()
        assert len(rows) == 1
        assert rows[0].status == AttemptStatusEnum.IN_PROGRESS


def test_concurrent_submits_score_once(session_factory):
    user_id = uuid.uuid4()
    with session_factory() as db:
        evaluation = create_evaluation(db)
        ids = [str(q) for q in question_ids(evaluation)]
        attempt_id = attempts.start_or_resume(db, evaluation.id, user_id).attempt.id
        # Every question already has a row, so submit only updates answers.
        attempts.save_answers(db, attempt_id, user_id, {qid: "a" for qid in ids})

    def submit():
        with session_factory() as db:
            return attempts.submit_attempt(db, attempt_id, user_id)

    results, errors = _run_concurrently(3, submit)

    assert len(results) == 1
    assert len(errors) == 2
    assert all(isinstance(e, AlreadySubmitted) for e in errors)
    with session_factory() as db:
        attempt = db.get(Attempt, attempt_id)
        assert attempt.status == AttemptStatusEnum.SUBMITTED
        assert attempt.score == results[0].score
