"""Book model for photographed books and their aggregated text."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, SQLModel

from thereader.utils.clock import utc_now


class BookStatus(str, Enum):
    """Ingestion state of a book."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Book(SQLModel, table=True):
    """Book composed from a capture session's page photos.

    ``full_text`` is only set once ingestion completes; ``owner_id`` never
    changes after creation.
    """

    __tablename__ = "books"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    owner_id: UUID = Field(
        foreign_key="users.id",
        nullable=False,
        index=True,
        ondelete="CASCADE",
    )
    title: str | None = Field(default=None, index=True)
    author: str | None = Field(default=None)
    category: str | None = Field(default=None, index=True)
    categories: list[str] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    keywords: list[dict[str, Any]] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    cover: str | None = Field(default=None)
    status: str = Field(
        default=BookStatus.PROCESSING.value,
        nullable=False,
        index=True,
    )
    full_text: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )

    # Conversational agent integration ids (kept for data compatibility)
    agent_id: str | None = Field(default=None)
    knowledge_base_id: str | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )
