"""initial reader schema

Revision ID: 3f1c9a7d2b04
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, books, capture sessions, pages, text blocks and logs."""

    # 1. Accounts and preferences
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('elevenlabs_api_key', sa.String(), nullable=True),
        sa.Column('elevenlabs_voice_id', sa.String(), nullable=True),
        sa.Column('language', sa.String(), nullable=False, server_default='en'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )

    # 2. Books
    op.create_table(
        'books',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('categories', sa.JSON(), nullable=True),
        sa.Column('keywords', sa.JSON(), nullable=True),
        sa.Column('cover', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='processing'),
        sa.Column('full_text', sa.Text(), nullable=True),
        sa.Column('agent_id', sa.String(), nullable=True),
        sa.Column('knowledge_base_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_books_owner_id', 'books', ['owner_id'])
    op.create_index('ix_books_title', 'books', ['title'])
    op.create_index('ix_books_category', 'books', ['category'])
    op.create_index('ix_books_status', 'books', ['status'])

    # 3. Capture sessions (token is the primary key)
    op.create_table(
        'scanning_sessions',
        sa.Column('token', sa.String(), nullable=False),
        sa.Column('book_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('step_label', sa.String(), nullable=True),
        sa.Column('steps_done', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('steps_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('detail', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('token')
    )
    op.create_index('ix_scanning_sessions_book_id', 'scanning_sessions', ['book_id'])
    op.create_index('ix_scanning_sessions_status', 'scanning_sessions', ['status'])
    op.create_index('ix_scanning_sessions_expires_at', 'scanning_sessions', ['expires_at'])

    # 4. Pages (dense numbering per book)
    op.create_table(
        'pages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('book_id', sa.Uuid(), nullable=False),
        sa.Column('page_number', sa.Integer(), nullable=False),
        sa.Column('image_uri', sa.String(), nullable=False),
        sa.Column('ocr_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('book_id', 'page_number', name='uq_page_book_number')
    )
    op.create_index('ix_pages_book_id', 'pages', ['book_id'])

    # 5. Text blocks
    op.create_table(
        'text_blocks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('page_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('x', sa.Integer(), nullable=False),
        sa.Column('y', sa.Integer(), nullable=False),
        sa.Column('width', sa.Integer(), nullable=False),
        sa.Column('height', sa.Integer(), nullable=False),
        sa.Column('ocr_text', sa.Text(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='0.9'),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('audio_uri', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['page_id'], ['pages.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_text_blocks_page_id', 'text_blocks', ['page_id'])

    # 6. Ingestion audit trail
    op.create_table(
        'ingestion_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('book_id', sa.Uuid(), nullable=False),
        sa.Column('pipeline_stage', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('execution_time_ms', sa.Integer(), nullable=True),
        sa.Column('log_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_ingestion_logs_book_id', 'ingestion_logs', ['book_id'])
    op.create_index('ix_ingestion_logs_pipeline_stage', 'ingestion_logs', ['pipeline_stage'])
    op.create_index('ix_ingestion_logs_status', 'ingestion_logs', ['status'])
    op.create_index('ix_ingestion_logs_created_at', 'ingestion_logs', ['created_at'])


def downgrade() -> None:
    """Drop the reader schema."""

    op.drop_index('ix_ingestion_logs_created_at', table_name='ingestion_logs')
    op.drop_index('ix_ingestion_logs_status', table_name='ingestion_logs')
    op.drop_index('ix_ingestion_logs_pipeline_stage', table_name='ingestion_logs')
    op.drop_index('ix_ingestion_logs_book_id', table_name='ingestion_logs')
    op.drop_table('ingestion_logs')

    op.drop_index('ix_text_blocks_page_id', table_name='text_blocks')
    op.drop_table('text_blocks')

    op.drop_index('ix_pages_book_id', table_name='pages')
    op.drop_table('pages')

    op.drop_index('ix_scanning_sessions_expires_at', table_name='scanning_sessions')
    op.drop_index('ix_scanning_sessions_status', table_name='scanning_sessions')
    op.drop_index('ix_scanning_sessions_book_id', table_name='scanning_sessions')
    op.drop_table('scanning_sessions')

    op.drop_index('ix_books_status', table_name='books')
    op.drop_index('ix_books_category', table_name='books')
    op.drop_index('ix_books_title', table_name='books')
    op.drop_index('ix_books_owner_id', table_name='books')
    op.drop_table('books')

    op.drop_table('user_preferences')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
