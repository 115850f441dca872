"""Page model for uploaded page photos."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from thereader.utils.clock import utc_now


class PageOcrStatus(str, Enum):
    """Whether the ingestion pipeline has processed a page."""

    PENDING = "pending"
    OCR_DONE = "ocr_done"


class Page(SQLModel, table=True):
    """Page photo belonging to a book; ``page_number`` is dense from 1."""

    __tablename__ = "pages"
    __table_args__ = (
        UniqueConstraint("book_id", "page_number", name="uq_page_book_number"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    book_id: UUID = Field(
        foreign_key="books.id",
        nullable=False,
        index=True,
        ondelete="CASCADE",
    )
    page_number: int = Field(nullable=False)
    image_uri: str = Field(nullable=False)
    ocr_status: str = Field(default=PageOcrStatus.PENDING.value, nullable=False)
    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )
