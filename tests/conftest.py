"""Shared pytest fixtures for attempt engine tests."""

import os

# Keep the limiter off Redis unless a test patches it in explicitly.
os.environ["RATE_LIMIT_ATTEMPT_RPM"] = "0"

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from quizportal.core.security import create_access_token
from quizportal.db.models import (
    Enrollment,
    Evaluation,
    EvaluationKindEnum,
    EvaluationQuestion,
    EvaluationStatusEnum,
    Question,
    QuestionTypeEnum,
)
from quizportal.db.session import Base, get_db
from quizportal.main import app


# Use an in-memory SQLite database for testing with static pool
SQLALCHEMY_TEST_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def engine():
    """Fresh schema per test; services commit, so rollback alone can't isolate."""
    eng = create_engine(
        SQLALCHEMY_TEST_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Use StaticPool to keep connection alive
        echo=False,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Get a fresh DB session for each test."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db: Session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Remove TrustedHostMiddleware for tests to allow 'testserver' host
    app.user_middleware = [m for m in app.user_middleware if "TrustedHost" not in str(m)]

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ── Helpers ────────────────────────────────────────────────────────────────────


def utc(minutes: float = 0) -> datetime:
    """Now shifted by *minutes*, timezone-aware."""
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def auth(user_id: uuid.UUID, role: str = "student") -> dict:
    token = create_access_token({"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}


# Default question set: total 4 points, answers a / True / [a,c] / Paris.
DEFAULT_QUESTIONS = [
    {
        "type": QuestionTypeEnum.MULTIPLE_CHOICE,
        "content": "Pick a",
        "options": ["a", "b", "c", "d"],
        "correct_answer": "a",
    },
    {
        "type": QuestionTypeEnum.TRUE_FALSE,
        "content": "Sky is blue",
        "options": ["True", "False"],
        "correct_answer": "True",
    },
    {
        "type": QuestionTypeEnum.MULTI_SELECT,
        "content": "Pick a and c",
        "options": ["a", "b", "c"],
        "correct_answer": json.dumps(["a", "c"]),
    },
    {
        "type": QuestionTypeEnum.FILL_IN_BLANK,
        "content": "Capital of France",
        "correct_answer": "Paris",
    },
]


def create_evaluation(
    db: Session,
    questions: list[dict] | None = None,
    enrolled: list[uuid.UUID] | None = None,
    **fields,
) -> Evaluation:
    """Persist an ACTIVE quiz with *questions* (``points`` defaults to 1)."""
    fields.setdefault("kind", EvaluationKindEnum.QUIZ)
    fields.setdefault("status", EvaluationStatusEnum.ACTIVE)
    fields.setdefault("title", "Unit quiz")
    evaluation = Evaluation(**fields)
    db.add(evaluation)
    db.flush()

    for position, data in enumerate(questions if questions is not None else DEFAULT_QUESTIONS):
        data = dict(data)
        points = data.pop("points", 1)
        options = data.pop("options", None)
        question = Question(
            options=json.dumps(options) if options is not None else None, **data
        )
        db.add(question)
        db.flush()
        db.add(
            EvaluationQuestion(
                evaluation_id=evaluation.id,
                question_id=question.id,
                position=position,
                points=points,
            )
        )

    for user_id in enrolled or []:
        db.add(Enrollment(evaluation_id=evaluation.id, user_id=user_id))

    db.commit()
    db.refresh(evaluation)
    return evaluation


def question_ids(evaluation: Evaluation) -> list[uuid.UUID]:
    return [ref.question_id for ref in evaluation.evaluation_questions]


@pytest.fixture
def student_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def quiz(db: Session) -> Evaluation:
    return create_evaluation(db)
