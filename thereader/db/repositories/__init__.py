"""Database repositories for TheReader."""

from thereader.db.repositories.base_repository import BaseRepository
from thereader.db.repositories.book_repository import BookRepository
from thereader.db.repositories.ingestion_log_repository import IngestionLogRepository
from thereader.db.repositories.page_repository import PageRepository
from thereader.db.repositories.session_repository import SessionRepository
from thereader.db.repositories.text_block_repository import TextBlockRepository
from thereader.db.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "BookRepository",
    "IngestionLogRepository",
    "PageRepository",
    "SessionRepository",
    "TextBlockRepository",
    "UserRepository",
]
