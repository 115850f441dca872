"""Database models for TheReader."""

from thereader.db.models.book import Book, BookStatus
from thereader.db.models.ingestion_log import IngestionLog
from thereader.db.models.page import Page, PageOcrStatus
from thereader.db.models.scanning_session import ScanningSession, SessionStatus
from thereader.db.models.text_block import BlockStatus, TextBlock
from thereader.db.models.user import User, UserPreferences

__all__ = [
    "Book",
    "BookStatus",
    "Page",
    "PageOcrStatus",
    "ScanningSession",
    "SessionStatus",
    "TextBlock",
    "BlockStatus",
    "IngestionLog",
    "User",
    "UserPreferences",
]
