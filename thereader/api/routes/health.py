"""Health check endpoint for monitoring and deployment verification."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.api.dependencies import get_db
from thereader.version import __version__

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> dict[str, str]:  # noqa: B008
    """
    Health check endpoint that verifies API and database connectivity.

    Returns:
        dict: Health status including database connection state and API version

    Raises:
        HTTPException: 503 if database is unavailable
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise HTTPException(status_code=503, detail="Database unavailable") from e
    return {"status": "healthy", "database": "connected", "version": __version__}
