"""Capture session coordinator: phone pairing, page uploads and hand-off to ingestion."""

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import NoReturn
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thereader.config import settings
from thereader.core.capture.qr import png_data_url, render_qr_png
from thereader.core.storage.artifact_keys import upload_key
from thereader.core.storage.base import ArtifactStore
from thereader.core.vision.image_info import read_image_info
from thereader.db.models.book import Book, BookStatus
from thereader.db.models.page import Page
from thereader.db.models.scanning_session import ScanningSession, SessionStatus
from thereader.db.repositories.book_repository import BookRepository
from thereader.db.repositories.page_repository import PageRepository
from thereader.db.repositories.session_repository import SessionRepository
from thereader.utils.clock import utc_now
from thereader.utils.exceptions import (
    BadImageError,
    InvalidInputError,
    ReaderError,
    SessionInvalidError,
    SessionNotFoundError,
)

logger = structlog.get_logger(__name__)

PAGE_INSERT_ATTEMPTS = 3
QUEUED_LABEL = "Queued for processing"


@dataclass
class CaptureHandle:
    """What the desktop needs to pair a phone with a new book."""

    token: str
    book_id: UUID
    mobile_url: str
    qr_png: bytes

    @property
    def qr_data_url(self) -> str:
        return png_data_url(self.qr_png)


@dataclass
class PageUpload:
    page_number: int
    image_uri: str


@dataclass
class SessionProgress:
    step_label: str | None = None
    steps_done: int = 0
    steps_total: int = 0
    detail: str | None = None


@dataclass
class CaptureStatus:
    """Observed state of a session, with expiry applied."""

    token: str
    book_id: UUID
    status: str
    pages: list[Page] = field(default_factory=list)
    progress: SessionProgress = field(default_factory=SessionProgress)


class CaptureCoordinator:
    """
    Owns the capture session state machine.

    ``active -> processing -> completed | failed``; ``expired`` is observed
    on ``active``/``processing`` sessions past ``expires_at``. ``complete``
    on a ``failed`` session moves it back to ``processing`` (retry).

    Every operation opens its own short transaction from ``session_factory``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ArtifactStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.clock = clock

    async def create_session(self, owner_id: UUID) -> CaptureHandle:
        """
        Create an empty book and an active capture session for it.

        Args:
            owner_id: UUID of the user who will own the book

        Returns:
            CaptureHandle with the token, pairing URL and QR code
        """
        now = self.clock()
        token = secrets.token_urlsafe(32)
        async with self.session_factory() as db:
            book = await BookRepository(db).create_book(owner_id)
            await SessionRepository(db).create(
                ScanningSession(
                    token=token,
                    book_id=book.id,
                    created_at=now,
                    updated_at=now,
                    expires_at=now + timedelta(hours=settings.session_ttl_hours),
                )
            )
            await db.commit()
            book_id = book.id

        mobile_url = f"{settings.public_base_url}/mobile?session={token}"
        logger.info("capture_session_created", book_id=str(book_id), owner_id=str(owner_id))
        return CaptureHandle(
            token=token,
            book_id=book_id,
            mobile_url=mobile_url,
            qr_png=render_qr_png(mobile_url),
        )

    async def add_page(
        self,
        token: str,
        image_bytes: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> PageUpload:
        """
        Store a page photo and append it to the session's book.

        The blob is written before the page row; if the row cannot be
        inserted the blob is deleted again (best effort).

        Raises:
            BadImageError: Not an image, or the header cannot be decoded
            InvalidInputError: Image larger than the upload limit
            SessionNotFoundError: Unknown token
            SessionInvalidError: Session is not active or has expired
        """
        if not content_type or not content_type.lower().startswith("image/"):
            raise BadImageError(f"Unsupported content type: {content_type}")
        if not image_bytes:
            raise BadImageError("Empty upload")
        if len(image_bytes) > settings.max_upload_bytes:
            raise InvalidInputError(
                f"Image exceeds {settings.max_upload_bytes} bytes", code="file_too_large"
            )
        read_image_info(image_bytes)

        async with self.session_factory() as db:
            session = await SessionRepository(db).get_active(token, self.clock())
            if session is None:
                await self._raise_inactive(db, token)

        key = upload_key(filename, content_type)
        uri = await self.store.put(key, image_bytes, content_type)
        try:
            page = await self._insert_page(token, uri)
        except (SQLAlchemyError, ReaderError):
            logger.warning("page_insert_failed_removing_blob", key=key)
            await self.store.delete(key)
            raise

        logger.info(
            "page_uploaded",
            book_id=str(page.book_id),
            page_number=page.page_number,
            size=len(image_bytes),
        )
        return PageUpload(page_number=page.page_number, image_uri=page.image_uri)

    async def _insert_page(self, token: str, image_uri: str) -> Page:
        for attempt in range(1, PAGE_INSERT_ATTEMPTS + 1):
            try:
                async with self.session_factory() as db:
                    session = await SessionRepository(db).get_active(token, self.clock())
                    if session is None:
                        await self._raise_inactive(db, token)
                    page = await PageRepository(db).append_page(session.book_id, image_uri)
                    await db.commit()
                    return page
            except IntegrityError:
                if attempt == PAGE_INSERT_ATTEMPTS:
                    raise
                logger.warning("page_ordinal_conflict", attempt=attempt)
        raise RuntimeError("Unexpected page insert loop exit")

    async def complete(self, token: str) -> bool:
        """
        Close capture and hand the book to ingestion.

        Returns:
            True if this call moved the session to ``processing`` and the
            caller must start the ingestion worker; False when the session
            was already processing or completed

        Raises:
            SessionNotFoundError: Unknown token
            SessionInvalidError: Session has expired
            InvalidInputError: No pages were uploaded
        """
        now = self.clock()
        async with self.session_factory() as db:
            sessions = SessionRepository(db)
            session = await sessions.get_by_token(token)
            if session is None:
                raise SessionNotFoundError("Session not found")

            status = session.effective_status(now)
            if status == SessionStatus.EXPIRED.value:
                raise SessionInvalidError("Session has expired", code="session_expired")
            if status in (SessionStatus.PROCESSING.value, SessionStatus.COMPLETED.value):
                logger.info("capture_complete_noop", status=status)
                return False

            page_count = await PageRepository(db).count_for_book(session.book_id)
            if page_count == 0:
                raise InvalidInputError("No pages uploaded", code="no_pages")

            retry = status == SessionStatus.FAILED.value
            won = await sessions.transition(
                token,
                [status],
                SessionStatus.PROCESSING.value,
                now,
                require_unexpired=not retry,
                step_label=QUEUED_LABEL,
                steps_done=0,
                steps_total=page_count + 3,
                detail=None,
            )
            if won and retry:
                book = await db.get(Book, session.book_id)
                if book is not None:
                    book.status = BookStatus.PROCESSING.value
                    book.updated_at = now
            await db.commit()

        logger.info(
            "capture_completed",
            book_id=str(session.book_id),
            pages=page_count,
            scheduled=won,
            retry=retry,
        )
        return won

    async def status(self, token: str) -> CaptureStatus:
        """
        Observe a session.

        Raises:
            SessionNotFoundError: Unknown token
        """
        async with self.session_factory() as db:
            session = await SessionRepository(db).get_by_token(token)
            if session is None:
                raise SessionNotFoundError("Session not found")
            pages = await PageRepository(db).list_for_book(session.book_id)

        return CaptureStatus(
            token=session.token,
            book_id=session.book_id,
            status=session.effective_status(self.clock()),
            pages=pages,
            progress=SessionProgress(
                step_label=session.step_label,
                steps_done=session.steps_done,
                steps_total=session.steps_total,
                detail=session.detail,
            ),
        )

    async def sweep_expired(self) -> int:
        """Persist ``expired`` on active sessions past their expiry."""
        async with self.session_factory() as db:
            count = await SessionRepository(db).expire_stale(self.clock())
            await db.commit()
        logger.info("capture_sessions_expired", count=count)
        return count

    async def _raise_inactive(self, db: AsyncSession, token: str) -> NoReturn:
        session = await SessionRepository(db).get_by_token(token)
        if session is None:
            raise SessionNotFoundError("Session not found")
        status = session.effective_status(self.clock())
        if status == SessionStatus.EXPIRED.value:
            raise SessionInvalidError("Session has expired", code="session_expired")
        raise SessionInvalidError(f"Session is {status} and no longer accepts pages")
