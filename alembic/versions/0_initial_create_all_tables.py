"""Initial migration - create attempt engine tables

Revision ID: 0_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy's Enum persists member names, so the types hold the names.
_ENUMS = {
    'evaluation_kind_enum': ('QUIZ', 'ASSESSMENT'),
    'evaluation_status_enum': ('DRAFT', 'ACTIVE', 'CLOSED'),
    'question_type_enum': ('TRUE_FALSE', 'MULTIPLE_CHOICE', 'MULTI_SELECT', 'FILL_IN_BLANK'),
    'attempt_status_enum': ('IN_PROGRESS', 'SUBMITTED'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # ── Create enums ──────────────────────────────────────────────────
    for name, values in _ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(f"""
            DO $$ BEGIN
                CREATE TYPE {name} AS ENUM ({labels});
            EXCEPTION WHEN duplicate_object THEN null;
            END $$;
        """)

    # ── evaluations table ─────────────────────────────────────────────
    op.create_table(
        'evaluations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('kind', _enum('evaluation_kind_enum'), nullable=False, server_default='QUIZ'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', _enum('evaluation_status_enum'), nullable=False, server_default='DRAFT'),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('max_violations', sa.Integer(), nullable=True),
        sa.Column('negative_marking', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('negative_points', sa.Float(), nullable=False, server_default='0'),
        sa.Column('random_order', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('show_answers_after_submit', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('check_answer_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('disable_copy_paste', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('late_join_grace_minutes', sa.Integer(), nullable=True),
        sa.Column('access_key_hash', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_evaluations_status', 'evaluations', ['status'])

    # ── questions table ───────────────────────────────────────────────
    op.create_table(
        'questions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('type', _enum('question_type_enum'), nullable=False, server_default='MULTIPLE_CHOICE'),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('options', sa.Text(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=False, server_default=''),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # ── evaluation_questions table ────────────────────────────────────
    op.create_table(
        'evaluation_questions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('evaluation_id', sa.UUID(), nullable=False),
        sa.Column('question_id', sa.UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['evaluation_id'], ['evaluations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('evaluation_id', 'question_id', name='uq_evaluation_question'),
    )

    # ── enrollments table ─────────────────────────────────────────────
    op.create_table(
        'enrollments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('evaluation_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['evaluation_id'], ['evaluations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('evaluation_id', 'user_id', name='uq_enrollment_user'),
    )
    op.create_index('ix_enrollments_evaluation_id', 'enrollments', ['evaluation_id'])
    op.create_index('ix_enrollments_user_id', 'enrollments', ['user_id'])

    # ── attempts table ────────────────────────────────────────────────
    op.create_table(
        'attempts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('evaluation_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('status', _enum('attempt_status_enum'), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('points_earned', sa.Float(), nullable=True),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_count', sa.Integer(), nullable=True),
        sa.Column('time_taken_seconds', sa.Integer(), nullable=True),
        sa.Column('is_auto_submitted', sa.Boolean(), nullable=False, server_default='false'),
        sa.ForeignKeyConstraint(['evaluation_id'], ['evaluations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_attempts_user_id', 'attempts', ['user_id'])
    # At most one IN_PROGRESS attempt per (evaluation, user).
    op.create_index(
        'uq_attempt_single_in_progress',
        'attempts',
        ['evaluation_id', 'user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'IN_PROGRESS'"),
    )

    # ── attempt_answers table ─────────────────────────────────────────
    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('attempt_id', sa.UUID(), nullable=False),
        sa.Column('question_id', sa.UUID(), nullable=False),
        sa.Column('user_answer', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('points_earned', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_question'),
    )

    # ── violations table ──────────────────────────────────────────────
    op.create_table(
        'violations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('attempt_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('evaluation_id', sa.UUID(), nullable=False),
        sa.Column('violation_type', sa.String(50), nullable=False, server_default='tab_switch'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_violations_attempt_id', 'violations', ['attempt_id'])

    # ── portal_settings table ─────────────────────────────────────────
    op.create_table(
        'portal_settings',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False, server_default=''),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    # Drop all tables in reverse order
    op.drop_table('portal_settings')
    op.drop_table('violations')
    op.drop_table('attempt_answers')
    op.drop_index('uq_attempt_single_in_progress', table_name='attempts')
    op.drop_table('attempts')
    op.drop_table('enrollments')
    op.drop_table('evaluation_questions')
    op.drop_table('questions')
    op.drop_table('evaluations')
    for name in reversed(list(_ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
