"""Ingestion pipeline: cover analysis, per-page OCR and book finalization."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thereader.config import settings
from thereader.core.ingestion.cover_analysis import CoverAnalysis, CoverAnalyzer
from thereader.core.storage.base import ArtifactStore, key_from_uri
from thereader.core.vision.extractor import BlockExtractor
from thereader.db.models.book import Book, BookStatus
from thereader.db.models.page import Page
from thereader.db.models.scanning_session import SessionStatus
from thereader.db.models.text_block import BlockStatus, TextBlock
from thereader.db.repositories.ingestion_log_repository import IngestionLogRepository
from thereader.db.repositories.page_repository import PageRepository
from thereader.db.repositories.session_repository import SessionRepository
from thereader.db.repositories.text_block_repository import TextBlockRepository
from thereader.utils.clock import utc_now
from thereader.utils.exceptions import (
    FatalError,
    IngestionCancelledError,
    InvalidInputError,
    SessionInvalidError,
    SessionNotFoundError,
)
from thereader.utils.retry import retry_with_exponential_backoff

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str, int, int], None]

PREPARE_LABEL = "Preparing book for processing"
COVER_LABEL = "Analyzing book cover and title"
READY_LABEL = "Book ready"


@dataclass
class _Snapshot:
    token: str
    book_id: UUID
    pages: list[Page]

    @property
    def steps_total(self) -> int:
        return len(self.pages) + 3


class IngestionPipeline:
    """
    Turn a captured book into readable text blocks.

    Stages:
    1. Prepare: snapshot the pages and reset progress
    2. Cover analysis: suggest metadata from the first page
    3. Per-page OCR: detect blocks and replace the page's blocks
    4. Finalize: aggregate text and complete book and session together

    Every stage uses its own short transactions so pollers always read
    committed progress. Transient provider failures are retried with
    exponential backoff; any other failure marks the book and session
    ``failed`` and is re-raised. If the book is deleted while running, the
    pipeline stops at the next stage boundary without rolling anything back.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ArtifactStore,
        extractor: BlockExtractor,
        cover_analyzer: CoverAnalyzer,
        on_progress: ProgressCallback | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize ingestion pipeline.

        Args:
            session_factory: Factory for short-lived database sessions
            store: Artifact store holding page images
            extractor: Block extractor used for every page
            cover_analyzer: Metadata suggester for the first page
            on_progress: Optional callback receiving (label, done, total)
            clock: Source of naive UTC timestamps
        """
        self.session_factory = session_factory
        self.store = store
        self.extractor = extractor
        self.cover_analyzer = cover_analyzer
        self.on_progress = on_progress
        self.clock = clock

    async def run(self, token: str) -> Book | None:
        """
        Ingest the book of a session that is in ``processing``.

        Args:
            token: Capture session token

        Returns:
            The completed Book, or None if the book was deleted mid-run

        Raises:
            SessionNotFoundError: Unknown token
            SessionInvalidError: Session is not processing
            ReaderError: Any permanent stage failure, after it was recorded
        """
        start_time = time.time()
        snapshot = await self._load(token)
        stage = "prepare"

        try:
            await self._prepare(snapshot)

            stage = "cover_analysis"
            analysis = await self._analyze_cover(snapshot)

            stage = "page_ocr"
            page_texts: list[str] = []
            for index, page in enumerate(snapshot.pages, start=1):
                text = await self._process_page(snapshot, page, steps_done=1 + index)
                if text:
                    page_texts.append(text)

            stage = "finalize"
            book = await self._finalize(snapshot, analysis, page_texts)

        except IngestionCancelledError:
            logger.warning("ingestion_cancelled", book_id=str(snapshot.book_id), stage=stage)
            return None
        except Exception as e:
            await self._fail(snapshot, stage, e)
            logger.error(
                "ingestion_failed",
                book_id=str(snapshot.book_id),
                stage=stage,
                error=str(e),
            )
            raise

        logger.info(
            "ingestion_complete",
            book_id=str(book.id),
            pages=len(snapshot.pages),
            pages_with_text=len(page_texts),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return book

    async def _load(self, token: str) -> _Snapshot:
        async with self.session_factory() as db:
            session = await SessionRepository(db).get_by_token(token)
            if session is None:
                raise SessionNotFoundError("Session not found")
            if session.status != SessionStatus.PROCESSING.value:
                raise SessionInvalidError(
                    f"Session is {session.status}; complete it before ingesting"
                )
            pages = await PageRepository(db).list_for_book(session.book_id)
        return _Snapshot(token=token, book_id=session.book_id, pages=pages)

    async def _prepare(self, snapshot: _Snapshot) -> None:
        pages = snapshot.pages
        if not pages:
            raise InvalidInputError("No pages uploaded", code="no_pages")

        logger.info(
            "ingestion_started",
            book_id=str(snapshot.book_id),
            pages=len(pages),
        )
        await self._progress(
            snapshot,
            PREPARE_LABEL,
            0,
            detail=f"Processing {len(pages)} page{'s' if len(pages) != 1 else ''}",
        )
        await self._record(snapshot.book_id, "prepare", "completed", pages=len(pages))

    async def _analyze_cover(self, snapshot: _Snapshot) -> CoverAnalysis:
        started = time.time()
        await self._progress(snapshot, COVER_LABEL, 0, detail="Using AI to extract book information")

        key = key_from_uri(snapshot.pages[0].image_uri)
        if key is None:
            await self._record(
                snapshot.book_id,
                "cover_analysis",
                "warning",
                error_message="First page image is not in the artifact store",
            )
            analysis = CoverAnalysis()
        else:
            image = await self.store.get_bytes(key)
            analysis = await retry_with_exponential_backoff(
                self.cover_analyzer.analyze,
                image,
                max_retries=settings.retry_max_attempts,
                initial_delay=settings.retry_initial_delay,
            )
            await self._record(
                snapshot.book_id,
                "cover_analysis",
                "completed",
                started=started,
                title=analysis.title,
                category=analysis.category,
            )

        await self._progress(snapshot, COVER_LABEL, 1)
        return analysis

    async def _process_page(self, snapshot: _Snapshot, page: Page, steps_done: int) -> str:
        started = time.time()
        total = len(snapshot.pages)
        await self._progress(
            snapshot,
            f"Processing page {page.page_number} of {total}",
            steps_done - 1,
            detail=f"Extracting text from page {page.page_number}",
        )

        key = key_from_uri(page.image_uri)
        if key is None:
            raise FatalError(f"Page {page.page_number} image is not in the artifact store")
        image = await self.store.get_bytes(key)
        detected = await retry_with_exponential_backoff(
            self.extractor.extract,
            image,
            max_retries=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
        )

        async with self.session_factory() as db:
            await self._require_book(db, snapshot.book_id)
            await TextBlockRepository(db).replace_for_page(
                page.id,
                [
                    TextBlock(
                        page_id=page.id,
                        sequence=0,
                        x=int(block.x),
                        y=int(block.y),
                        width=int(block.width),
                        height=int(block.height),
                        ocr_text=block.text,
                        confidence=block.confidence,
                        status=BlockStatus.COMPLETED.value,
                    )
                    for block in detected
                ],
            )
            await PageRepository(db).mark_ocr_done(page.id)
            await db.commit()

        texts = [block.text for block in detected if block.text]
        await self._record(
            snapshot.book_id,
            "page_ocr",
            "completed" if texts else "warning",
            started=started,
            error_message=None if texts else f"No text found on page {page.page_number}",
            page_number=page.page_number,
            blocks=len(detected),
        )
        await self._progress(snapshot, f"Processed page {page.page_number} of {total}", steps_done)

        if not texts:
            return ""
        return f"=== Page {page.page_number} ===\n" + "\n".join(texts)

    async def _finalize(
        self, snapshot: _Snapshot, analysis: CoverAnalysis, page_texts: list[str]
    ) -> Book:
        if not page_texts:
            raise FatalError("No text found on any page", code="no_text")

        full_text = "\n\n".join(page_texts)
        now = self.clock()
        async with self.session_factory() as db:
            book = await self._require_book(db, snapshot.book_id)
            book.title = analysis.title
            book.author = analysis.author
            book.category = analysis.category
            book.categories = list(analysis.categories)
            book.keywords = [k.model_dump() for k in analysis.keywords]
            book.cover = snapshot.pages[0].image_uri
            book.full_text = full_text
            book.status = BookStatus.COMPLETED.value
            book.updated_at = now
            db.add(book)

            await SessionRepository(db).update_progress(
                snapshot.token,
                now,
                status=SessionStatus.COMPLETED.value,
                step_label=READY_LABEL,
                steps_done=snapshot.steps_total,
                steps_total=snapshot.steps_total,
                detail="Book ready for reading!",
            )
            await IngestionLogRepository(db).add(
                snapshot.book_id,
                "finalize",
                "completed",
                log_metadata={"characters": len(full_text), "pages_with_text": len(page_texts)},
            )
            await db.commit()
            await db.refresh(book)

        self._notify(READY_LABEL, snapshot.steps_total, snapshot.steps_total)
        return book

    async def _fail(self, snapshot: _Snapshot, stage: str, error: Exception) -> None:
        now = self.clock()
        async with self.session_factory() as db:
            book = await db.get(Book, snapshot.book_id)
            if book is None:
                return
            book.status = BookStatus.FAILED.value
            book.updated_at = now
            db.add(book)
            await SessionRepository(db).update_progress(
                snapshot.token,
                now,
                status=SessionStatus.FAILED.value,
                detail=str(error),
            )
            await IngestionLogRepository(db).add(
                snapshot.book_id,
                stage,
                "failed",
                error_message=str(error),
                log_metadata={"error_type": type(error).__name__},
            )
            await db.commit()

    async def _progress(
        self,
        snapshot: _Snapshot,
        label: str,
        steps_done: int,
        detail: str | None = None,
    ) -> None:
        async with self.session_factory() as db:
            await SessionRepository(db).update_progress(
                snapshot.token,
                self.clock(),
                step_label=label,
                steps_done=steps_done,
                steps_total=snapshot.steps_total,
                detail=detail,
            )
            await db.commit()
        self._notify(label, steps_done, snapshot.steps_total)

    def _notify(self, label: str, steps_done: int, steps_total: int) -> None:
        if self.on_progress is not None:
            self.on_progress(label, steps_done, steps_total)

    async def _record(
        self,
        book_id: UUID,
        stage: str,
        status: str,
        *,
        started: float | None = None,
        error_message: str | None = None,
        **metadata: Any,
    ) -> None:
        """Write an audit row; doubles as the cancellation check between stages."""
        async with self.session_factory() as db:
            await self._require_book(db, book_id)
            await IngestionLogRepository(db).add(
                book_id,
                stage,
                status,
                error_message=error_message,
                execution_time_ms=int((time.time() - started) * 1000) if started else None,
                log_metadata=metadata or None,
            )
            await db.commit()

    @staticmethod
    async def _require_book(db: AsyncSession, book_id: UUID) -> Book:
        book = await db.get(Book, book_id)
        if book is None:
            raise IngestionCancelledError(f"Book {book_id} was deleted")
        return book
