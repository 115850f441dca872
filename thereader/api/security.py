"""Bearer token authentication for API routes."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.api.dependencies import get_db
from thereader.config import settings
from thereader.core.speech.synthesizer import TTSCredentials
from thereader.db.models.user import User
from thereader.db.repositories.user_repository import UserRepository
from thereader.utils.exceptions import AuthenticationError

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: UUID, expires_minutes: int | None = None) -> str:
    """
    Issue a signed identity token for a user.

    Args:
        user_id: UUID placed in the ``sub`` claim
        expires_minutes: Lifetime (defaults to settings.jwt_expires_minutes)

    Returns:
        Encoded JWT
    """
    now = datetime.now(UTC)
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.jwt_expires_minutes),
    }
    return jwt.encode(
        claims,
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> UUID:
    """
    Verify a token and return the user id it carries.

    Raises:
        AuthenticationError: If the signature, expiry or subject is invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
        return UUID(str(payload["sub"]))
    except (JWTError, KeyError, ValueError) as e:
        raise AuthenticationError("Invalid or expired token") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> User:
    """
    Resolve the authenticated user from the ``Authorization: Bearer`` header.

    Raises:
        HTTPException: 401 if the token is missing, invalid or its user is gone
    """
    if credentials is None:
        logger.warning("bearer_token_missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("bearer_token_invalid")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        logger.warning("bearer_token_unknown_user", user_id=str(user_id))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_tts_credentials(
    user: User = Depends(get_current_user),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> TTSCredentials:
    """Read the caller's ElevenLabs key and voice fresh for this request."""
    prefs = await UserRepository(db).get_preferences(user.id)
    if prefs is None:
        return TTSCredentials(api_key=None, voice_id=None)
    return TTSCredentials(
        api_key=prefs.elevenlabs_api_key,
        voice_id=prefs.elevenlabs_voice_id,
    )
