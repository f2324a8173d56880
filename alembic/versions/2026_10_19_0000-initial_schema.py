"""initial schema

Revision ID: 5d2b9c4e7a10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5d2b9c4e7a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'books',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('author', sa.String(length=300), nullable=False),
        sa.Column('total_pages', sa.Integer(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'reading_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('book_id', sa.Integer(), nullable=False),
        sa.Column('session_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('started_date', sa.Date(), nullable=True),
        sa.Column('completed_date', sa.Date(), nullable=True),
        sa.Column('dnf_date', sa.Date(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('review', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('read_next_order', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('book_id', 'session_number', name='uq_reading_sessions_book_number'),
    )
    op.create_index('ix_reading_sessions_book_id', 'reading_sessions', ['book_id'])
    op.create_index('ix_reading_sessions_user_id', 'reading_sessions', ['user_id'])
    op.create_index(
        'uq_reading_sessions_one_active',
        'reading_sessions',
        ['book_id'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    op.create_table(
        'progress_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('book_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('current_page', sa.Integer(), nullable=False),
        sa.Column('current_percentage', sa.Float(), nullable=False),
        sa.Column('progress_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('pages_read', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['session_id'], ['reading_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_progress_logs_user_id', 'progress_logs', ['user_id'])
    op.create_index('ix_progress_logs_session_date', 'progress_logs', ['session_id', 'progress_date'])
    op.create_index('ix_progress_logs_book_date', 'progress_logs', ['book_id', 'progress_date'])

    op.create_table(
        'streaks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('owner_key', sa.Integer(), nullable=False),
        sa.Column('current_streak', sa.Integer(), nullable=False),
        sa.Column('longest_streak', sa.Integer(), nullable=False),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('streak_start_date', sa.Date(), nullable=True),
        sa.Column('total_days_active', sa.Integer(), nullable=False),
        sa.Column('daily_threshold', sa.Integer(), nullable=False),
        sa.Column('user_timezone', sa.String(length=64), nullable=True),
        sa.Column('streak_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_key'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('streaks')
    op.drop_index('ix_progress_logs_book_date', 'progress_logs')
    op.drop_index('ix_progress_logs_session_date', 'progress_logs')
    op.drop_index('ix_progress_logs_user_id', 'progress_logs')
    op.drop_table('progress_logs')
    op.drop_index('uq_reading_sessions_one_active', 'reading_sessions')
    op.drop_index('ix_reading_sessions_user_id', 'reading_sessions')
    op.drop_index('ix_reading_sessions_book_id', 'reading_sessions')
    op.drop_table('reading_sessions')
    op.drop_table('books')
