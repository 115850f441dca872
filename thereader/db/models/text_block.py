"""Text block model: an OCR region on a page with optional cached audio."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

from thereader.utils.clock import utc_now


class BlockStatus(str, Enum):
    """Recognition state of a text block."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TextBlock(SQLModel, table=True):
    """Rectangular text region in displayed-image pixels."""

    __tablename__ = "text_blocks"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    page_id: UUID = Field(
        foreign_key="pages.id",
        nullable=False,
        index=True,
        ondelete="CASCADE",
    )
    sequence: int = Field(nullable=False)
    x: int = Field(nullable=False)
    y: int = Field(nullable=False)
    width: int = Field(nullable=False)
    height: int = Field(nullable=False)
    ocr_text: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    confidence: float = Field(default=0.9, nullable=False)
    status: str = Field(default=BlockStatus.PENDING.value, nullable=False)
    audio_uri: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )
