"""Capture session repository for database operations."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.db.models.scanning_session import ScanningSession, SessionStatus
from thereader.db.repositories.base_repository import BaseRepository


class SessionRepository(BaseRepository[ScanningSession]):
    """Repository for ScanningSession model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize capture session repository."""
        super().__init__(ScanningSession, session)

    async def get_by_token(self, token: str) -> ScanningSession | None:
        """Get a session by its token regardless of state."""
        return await self.get_by_id(token)

    async def get_active(self, token: str, now: datetime) -> ScanningSession | None:
        """
        Get a session that is active and unexpired at ``now``.

        Status and expiry are checked in the same statement as the key lookup.

        Args:
            token: Session token
            now: Current time (naive UTC)

        Returns:
            ScanningSession or None
        """
        result = await self.session.execute(
            select(ScanningSession).where(
                ScanningSession.token == token,  # type: ignore[arg-type]
                ScanningSession.status == SessionStatus.ACTIVE.value,  # type: ignore[arg-type]
                ScanningSession.expires_at >= now,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        token: str,
        from_statuses: Iterable[str],
        to_status: str,
        now: datetime,
        *,
        require_unexpired: bool = True,
        **values: Any,
    ) -> bool:
        """
        Conditionally move a session between states.

        Only sessions currently in one of ``from_statuses`` (and, unless
        ``require_unexpired`` is False, not yet expired) are updated, so of
        several concurrent callers exactly one wins.

        Args:
            token: Session token
            from_statuses: States the session must be in
            to_status: Target state
            now: Current time (naive UTC)
            require_unexpired: Also require ``expires_at >= now``
            **values: Extra columns to set in the same update

        Returns:
            True if this caller performed the transition
        """
        stmt = update(ScanningSession).where(
            ScanningSession.token == token,  # type: ignore[arg-type]
            ScanningSession.status.in_(list(from_statuses)),  # type: ignore[attr-defined]
        )
        if require_unexpired:
            stmt = stmt.where(ScanningSession.expires_at >= now)  # type: ignore[arg-type]
        result = await self.session.execute(
            stmt.values(status=to_status, updated_at=now, **values)
        )
        return bool(result.rowcount)

    async def update_progress(
        self,
        token: str,
        now: datetime,
        *,
        step_label: str | None = None,
        steps_done: int | None = None,
        steps_total: int | None = None,
        detail: str | None = None,
        status: str | None = None,
    ) -> None:
        """Update the progress record of a session; ``None`` leaves a field as is."""
        values: dict[str, Any] = {"updated_at": now}
        if step_label is not None:
            values["step_label"] = step_label
        if steps_done is not None:
            values["steps_done"] = steps_done
        if steps_total is not None:
            values["steps_total"] = steps_total
        if detail is not None:
            values["detail"] = detail
        if status is not None:
            values["status"] = status
        await self.session.execute(
            update(ScanningSession)
            .where(ScanningSession.token == token)  # type: ignore[arg-type]
            .values(**values)
        )

    async def expire_stale(self, now: datetime) -> int:
        """Persist ``expired`` on active sessions past their expiry."""
        result = await self.session.execute(
            update(ScanningSession)
            .where(
                ScanningSession.status == SessionStatus.ACTIVE.value,  # type: ignore[arg-type]
                ScanningSession.expires_at < now,  # type: ignore[arg-type]
            )
            .values(status=SessionStatus.EXPIRED.value, updated_at=now)
        )
        return result.rowcount or 0
