"""Initial migration - create exam, attempt and certificate tables

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


def upgrade() -> None:
    # ── Create enums ──────────────────────────────────────────────────
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE attempt_status_enum AS ENUM ('in_progress', 'submitted', 'expired');
        EXCEPTION WHEN duplicate_object THEN null;
        END $$;
    """)

    # ── exams table ───────────────────────────────────────────────────
    op.create_table(
        'exams',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('course_id', sa.String(64), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('passing_score', sa.Float(), nullable=False, server_default='60'),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=False, server_default='3600'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('shuffle_options', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('show_results_after_submit', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('available_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('available_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_exams_course_id', 'exams', ['course_id'])

    # ── exam_questions table ──────────────────────────────────────────
    op.create_table(
        'exam_questions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('exam_id', sa.UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(30), nullable=False, server_default='multiple_choice'),
        sa.Column('options', sa.Text(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('difficulty', sa.String(20), nullable=False, server_default='medium'),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_exam_questions_exam_id', 'exam_questions', ['exam_id'])

    # ── exam_attempts table ───────────────────────────────────────────
    op.create_table(
        'exam_attempts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('exam_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('status', postgresql.ENUM('in_progress', 'submitted', 'expired', name='attempt_status_enum', create_type=False), nullable=False, server_default='in_progress'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True),
        sa.Column('client_time_spent_seconds', sa.Integer(), nullable=True),
        sa.Column('auto_submitted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('earned_points', sa.Integer(), nullable=True),
        sa.Column('total_points', sa.Integer(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('certificate_id', sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'exam_id', 'attempt_number', name='uq_attempt_user_exam_number'),
    )
    op.create_index('ix_exam_attempts_exam_id', 'exam_attempts', ['exam_id'])
    op.create_index('ix_exam_attempts_user_id', 'exam_attempts', ['user_id'])
    # At most one in-progress attempt per (user, exam)
    op.create_index(
        'uq_attempt_user_exam_active',
        'exam_attempts',
        ['user_id', 'exam_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
    )

    # ── exam_answers table ────────────────────────────────────────────
    op.create_table(
        'exam_answers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('attempt_id', sa.UUID(), nullable=False),
        sa.Column('question_id', sa.UUID(), nullable=False),
        sa.Column('answer', sa.Text(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['attempt_id'], ['exam_attempts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['exam_questions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_answer_attempt_question'),
    )
    op.create_index('ix_exam_answers_attempt_id', 'exam_answers', ['attempt_id'])
    op.create_index('ix_exam_answers_question_id', 'exam_answers', ['question_id'])

    # ── certificates table ────────────────────────────────────────────
    op.create_table(
        'certificates',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('exam_id', sa.UUID(), nullable=False),
        sa.Column('course_id', sa.String(64), nullable=True),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'exam_id', name='uq_certificate_user_exam'),
    )
    op.create_index('ix_certificates_user_id', 'certificates', ['user_id'])


def downgrade() -> None:
    # ── Drop tables (reverse order of creation) ───────────────────────
    op.drop_table('certificates')
    op.drop_table('exam_answers')
    op.drop_index('uq_attempt_user_exam_active', table_name='exam_attempts')
    op.drop_table('exam_attempts')
    op.drop_table('exam_questions')
    op.drop_table('exams')

    # ── Drop enums ────────────────────────────────────────────────────
    sa.Enum(name='attempt_status_enum').drop(op.get_bind(), checkfirst=True)
