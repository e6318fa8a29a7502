"""SQLAlchemy ORM models for the quiz/assessment portal.

Tables
------
- evaluations           – quizzes and assessments (one table, ``kind`` tag)
- questions             – question bank entries (read-only to the attempt core)
- evaluation_questions  – evaluation ↔ question with ordering and points
- enrollments           – user ↔ evaluation membership (none = open to all)
- attempts              – one student's pass through an evaluation
- attempt_answers       – per‑question answers in an attempt
- violations            – append-only proctoring events (tab switches)
- portal_settings       – key/value portal switches (maintenance mode)

Users are owned by the identity provider; ``user_id`` columns hold the
authenticated principal's id and carry no foreign key.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quizportal.db.session import Base


# ── helpers ───────────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


# ── Enums (stored as VARCHAR via SQLAlchemy Enum) ─────────────────────────────


class EvaluationKindEnum(str, enum.Enum):
    QUIZ = "quiz"
    ASSESSMENT = "assessment"


class EvaluationStatusEnum(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class QuestionTypeEnum(str, enum.Enum):
    TRUE_FALSE = "true_false"
    MULTIPLE_CHOICE = "multiple_choice"
    MULTI_SELECT = "multi_select"
    FILL_IN_BLANK = "fill_in_blank"


class AttemptStatusEnum(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


# ── Evaluations ───────────────────────────────────────────────────────────────


class Evaluation(Base):
    """A quiz or an assessment. Kind-specific knobs share the same columns."""

    __tablename__ = "evaluations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    kind: Mapped[EvaluationKindEnum] = mapped_column(
        Enum(EvaluationKindEnum, name="evaluation_kind_enum"),
        default=EvaluationKindEnum.QUIZ,
    )
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[EvaluationStatusEnum] = mapped_column(
        Enum(EvaluationStatusEnum, name="evaluation_status_enum"),
        default=EvaluationStatusEnum.DRAFT,
        index=True,
    )
    time_limit_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_violations: Mapped[int | None] = mapped_column(Integer, nullable=True)
    negative_marking: Mapped[bool] = mapped_column(Boolean, default=False)
    negative_points: Mapped[float] = mapped_column(Float, default=0.0)
    random_order: Mapped[bool] = mapped_column(Boolean, default=False)
    show_answers_after_submit: Mapped[bool] = mapped_column(Boolean, default=False)
    check_answer_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    disable_copy_paste: Mapped[bool] = mapped_column(Boolean, default=False)
    late_join_grace_minutes: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )  # None → per-kind default from settings
    access_key_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    evaluation_questions: Mapped[list["EvaluationQuestion"]] = relationship(
        back_populates="evaluation",
        cascade="all, delete-orphan",
        order_by="EvaluationQuestion.position",
    )


# ── Questions ─────────────────────────────────────────────────────────────────


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    type: Mapped[QuestionTypeEnum] = mapped_column(
        Enum(QuestionTypeEnum, name="question_type_enum"),
        default=QuestionTypeEnum.MULTIPLE_CHOICE,
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text)
    options: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )  # JSON array for choice types
    correct_answer: Mapped[str] = mapped_column(
        Text, default=""
    )  # token, JSON array (MULTI_SELECT) or free text
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


class EvaluationQuestion(Base):
    """Join table between Evaluation and Question with ordering and points."""

    __tablename__ = "evaluation_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluations.id", ondelete="CASCADE")
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id")
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    points: Mapped[int] = mapped_column(Integer, default=1)

    evaluation: Mapped["Evaluation"] = relationship(
        back_populates="evaluation_questions"
    )
    question: Mapped["Question"] = relationship("Question")

    __table_args__ = (
        UniqueConstraint(
            "evaluation_id", "question_id", name="uq_evaluation_question"
        ),
    )


# ── Enrollments ───────────────────────────────────────────────────────────────


class Enrollment(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluations.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("evaluation_id", "user_id", name="uq_enrollment_user"),
    )


# ── Attempts ──────────────────────────────────────────────────────────────────


class Attempt(Base):
    __tablename__ = "attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluations.id", ondelete="CASCADE")
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True)
    status: Mapped[AttemptStatusEnum] = mapped_column(
        Enum(AttemptStatusEnum, name="attempt_status_enum"),
        default=AttemptStatusEnum.IN_PROGRESS,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)  # percentage
    points_earned: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    correct_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_taken_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_auto_submitted: Mapped[bool] = mapped_column(Boolean, default=False)

    evaluation: Mapped["Evaluation"] = relationship("Evaluation")
    answers: Mapped[list["AttemptAnswer"]] = relationship(
        back_populates="attempt", cascade="all, delete-orphan"
    )
    violations: Mapped[list["Violation"]] = relationship(
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="Violation.created_at",
    )

    # Stored enum values are the member *names*, hence 'IN_PROGRESS'.
    __table_args__ = (
        Index(
            "uq_attempt_single_in_progress",
            "evaluation_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )


class AttemptAnswer(Base):
    """Individual answer within an attempt."""

    __tablename__ = "attempt_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attempts.id", ondelete="CASCADE")
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id")
    )
    user_answer: Mapped[str] = mapped_column(Text, default="")
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    points_earned: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    attempt: Mapped["Attempt"] = relationship(back_populates="answers")
    question: Mapped["Question"] = relationship("Question")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_question"),
    )


# ── Violations (append-only) ──────────────────────────────────────────────────


class Violation(Base):
    __tablename__ = "violations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attempts.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    evaluation_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    violation_type: Mapped[str] = mapped_column(String(50), default="tab_switch")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    attempt: Mapped["Attempt"] = relationship(back_populates="violations")


# ── Portal settings ───────────────────────────────────────────────────────────


class PortalSetting(Base):
    """Key/value switch read by the portal at runtime (e.g. maintenance_mode)."""

    __tablename__ = "portal_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, default="")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
