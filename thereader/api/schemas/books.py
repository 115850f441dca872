"""Pydantic schemas for book and page API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from thereader.api.schemas.common import CamelModel
from thereader.core.reading.service import BookDetails, BookSummary
from thereader.db.models.book import Book
from thereader.db.models.ingestion_log import IngestionLog
from thereader.db.models.page import Page


class CreateBookResponse(CamelModel):
    """Response for starting a new book capture."""

    book_id: UUID
    session_id: str
    qr_code: str = Field(description="PNG QR code of mobile_url as a data URL")
    mobile_url: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "bookId": "123e4567-e89b-12d3-a456-426614174000",
                    "sessionId": "Jp1xkY3QH0q1m6rM3r4b8mC0nV9dQw2eT5yU7iO0pA4",
                    "qrCode": "data:image/png;base64,iVBORw0KGgo...",
                    "mobileUrl": "https://reader.example.com/mobile?session=Jp1xkY3Q...",
                }
            ]
        }
    }


class PageItem(CamelModel):
    id: UUID
    book_id: UUID
    page_number: int
    image_path: str
    ocr_status: str
    created_at: datetime

    @classmethod
    def from_page(cls, page: Page) -> "PageItem":
        return cls(
            id=page.id,
            book_id=page.book_id,
            page_number=page.page_number,
            image_path=page.image_uri,
            ocr_status=page.ocr_status,
            created_at=page.created_at,
        )


class BookFields(CamelModel):
    id: UUID
    title: str | None
    author: str | None
    category: str | None
    categories: list[str]
    keywords: list[dict[str, Any]]
    cover: str | None
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def book_values(cls, book: Book) -> dict[str, Any]:
        return {
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "category": book.category,
            "categories": book.categories or [],
            "keywords": book.keywords or [],
            "cover": book.cover,
            "status": book.status,
            "created_at": book.created_at,
            "updated_at": book.updated_at,
        }


class BookListItem(BookFields):
    """Book summary for list responses."""

    searchable_text: str
    keyword_text: str

    @classmethod
    def from_summary(cls, summary: BookSummary) -> "BookListItem":
        return cls(
            **cls.book_values(summary.book),
            searchable_text=summary.searchable_text,
            keyword_text=summary.keyword_text,
        )


class IngestionLogItem(CamelModel):
    """Ingestion log entry for book details."""

    pipeline_stage: str
    status: str
    error_message: str | None
    created_at: datetime

    @classmethod
    def from_log(cls, log: IngestionLog) -> "IngestionLogItem":
        return cls(
            pipeline_stage=log.pipeline_stage,
            status=log.status,
            error_message=log.error_message,
            created_at=log.created_at,
        )


class BookDetail(BookFields):
    """Detailed book information with pages and recent issues."""

    full_text: str | None
    pages: list[PageItem]
    recent_logs: list[IngestionLogItem]

    @classmethod
    def from_details(cls, details: BookDetails) -> "BookDetail":
        return cls(
            **cls.book_values(details.book),
            full_text=details.book.full_text,
            pages=[PageItem.from_page(p) for p in details.pages],
            recent_logs=[IngestionLogItem.from_log(log) for log in details.recent_logs],
        )


class FullTextResponse(CamelModel):
    book_id: UUID
    title: str | None
    author: str | None
    page_count: int
    full_text: str
    text_length: int


class CleanupResponse(BaseModel):
    deleted: int
