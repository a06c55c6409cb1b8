"""test sessions, answer log and conversation states

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.create_table(
        'test_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('identity', sa.BigInteger(), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('variant', sa.String(64), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('score >= 0 AND score <= total_questions', name='ck_test_sessions_score_range'),
    )
    op.create_index('ix_test_sessions_id', 'test_sessions', ['id'])
    op.create_index('ix_test_sessions_identity', 'test_sessions', ['identity'])
    # At most one in-progress attempt per identity
    op.create_index(
        'uq_test_sessions_identity_in_progress', 'test_sessions', ['identity'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        'answer_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('test_sessions.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('question_source_id', sa.String(64), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('correct_option_index', sa.Integer(), nullable=False),
        sa.Column('user_option_index', sa.Integer(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('session_id', 'position', name='uq_answer_log_session_position'),
    )
    op.create_index('ix_answer_log_id', 'answer_log', ['id'])
    op.create_index('ix_answer_log_session_id', 'answer_log', ['session_id'])

    op.create_table(
        'conversation_states',
        sa.Column('identity', sa.BigInteger(), primary_key=True),
        sa.Column('state', sa.String(32), nullable=False),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('test_sessions.id'), nullable=True),
        sa.Column('pending_name', sa.String(255), nullable=True),
        sa.Column('current_question_index', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

def downgrade() -> None:
    op.drop_table('conversation_states')
    op.drop_index('ix_answer_log_session_id', table_name='answer_log')
    op.drop_index('ix_answer_log_id', table_name='answer_log')
    op.drop_table('answer_log')
    op.drop_index('uq_test_sessions_identity_in_progress', table_name='test_sessions')
    op.drop_index('ix_test_sessions_identity', table_name='test_sessions')
    op.drop_index('ix_test_sessions_id', table_name='test_sessions')
    op.drop_table('test_sessions')
