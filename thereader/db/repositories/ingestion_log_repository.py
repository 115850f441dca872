"""Ingestion log repository for database operations."""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.db.models.ingestion_log import IngestionLog
from thereader.db.repositories.base_repository import BaseRepository

ISSUE_STATUSES = ("warning", "failed")


class IngestionLogRepository(BaseRepository[IngestionLog]):
    """Repository for IngestionLog model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize ingestion log repository."""
        super().__init__(IngestionLog, session)

    async def add(
        self,
        book_id: UUID,
        pipeline_stage: str,
        status: str,
        *,
        error_message: str | None = None,
        execution_time_ms: int | None = None,
        log_metadata: dict[str, Any] | None = None,
    ) -> IngestionLog:
        """Record one pipeline stage outcome."""
        log = IngestionLog(
            book_id=book_id,
            pipeline_stage=pipeline_stage,
            status=status,
            error_message=error_message,
            execution_time_ms=execution_time_ms,
            log_metadata=log_metadata,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def recent_issues(self, book_id: UUID, limit: int = 10) -> list[IngestionLog]:
        """Latest warning and failure entries of a book, newest first."""
        result = await self.session.execute(
            select(IngestionLog)
            .where(
                IngestionLog.book_id == book_id,  # type: ignore[arg-type]
                IngestionLog.status.in_(ISSUE_STATUSES),  # type: ignore[attr-defined]
            )
            .order_by(IngestionLog.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())
