"""User and per-user preference models."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from thereader.utils.clock import utc_now


class User(SQLModel, table=True):
    """Account that owns books."""

    __tablename__ = "users"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    email: str = Field(nullable=False, unique=True, index=True)
    display_name: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )


class UserPreferences(SQLModel, table=True):
    """Per-user settings, including the caller's own TTS credentials."""

    __tablename__ = "user_preferences"

    user_id: UUID = Field(
        foreign_key="users.id",
        primary_key=True,
        nullable=False,
        ondelete="CASCADE",
    )
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_voice_id: str | None = Field(default=None)
    language: str = Field(default="en", nullable=False)
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
    )
