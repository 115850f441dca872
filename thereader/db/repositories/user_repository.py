"""User and preferences repository for database operations."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.db.models.user import User, UserPreferences
from thereader.db.repositories.base_repository import BaseRepository
from thereader.utils.clock import utc_now


class UserRepository(BaseRepository[User]):
    """Repository for User model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize user repository."""
        super().__init__(User, session)

    async def create_user(self, email: str, display_name: str | None = None) -> User:
        """Create a new user."""
        return await self.create(User(email=email, display_name=display_name))

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email address."""
        result = await self.session.execute(
            select(User).where(User.email == email)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_preferences(self, user_id: UUID) -> UserPreferences | None:
        """Get a user's preferences; read fresh on every call."""
        return await self.session.get(UserPreferences, user_id)

    async def upsert_preferences(
        self,
        user_id: UUID,
        *,
        elevenlabs_api_key: str | None = None,
        elevenlabs_voice_id: str | None = None,
        language: str | None = None,
    ) -> UserPreferences:
        """
        Create or update a user's preferences.

        Args:
            user_id: UUID of the user
            elevenlabs_api_key: ElevenLabs API key, unchanged if None
            elevenlabs_voice_id: ElevenLabs voice id, unchanged if None
            language: Interface language, unchanged if None

        Returns:
            The stored UserPreferences
        """
        prefs = await self.get_preferences(user_id)
        if prefs is None:
            prefs = UserPreferences(user_id=user_id)
        if elevenlabs_api_key is not None:
            prefs.elevenlabs_api_key = elevenlabs_api_key
        if elevenlabs_voice_id is not None:
            prefs.elevenlabs_voice_id = elevenlabs_voice_id
        if language is not None:
            prefs.language = language
        prefs.updated_at = utc_now()
        self.session.add(prefs)
        await self.session.flush()
        return prefs
