"""Capture session model pairing a desktop book with a phone uploader."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlmodel import Field, SQLModel

from thereader.utils.clock import utc_now


class SessionStatus(str, Enum):
    """Lifecycle states of a capture session."""

    ACTIVE = "active"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


class ScanningSession(SQLModel, table=True):
    """Capture session keyed by its opaque token.

    The progress columns are the only coordination surface between the
    ingestion worker and polling clients.
    """

    __tablename__ = "scanning_sessions"

    token: str = Field(primary_key=True, nullable=False)
    book_id: UUID = Field(
        foreign_key="books.id",
        nullable=False,
        index=True,
        ondelete="CASCADE",
    )
    status: str = Field(
        default=SessionStatus.ACTIVE.value,
        nullable=False,
        index=True,
    )

    step_label: str | None = Field(default=None)
    steps_done: int = Field(default=0, nullable=False)
    steps_total: int = Field(default=0, nullable=False)
    detail: str | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )
    expires_at: datetime = Field(nullable=False, index=True)
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )

    def effective_status(self, now: datetime) -> str:
        """Status as observed at ``now``; expiry overlays non-terminal states."""
        if (
            self.status in (SessionStatus.ACTIVE.value, SessionStatus.PROCESSING.value)
            and now > self.expires_at
        ):
            return SessionStatus.EXPIRED.value
        return self.status
