"""Page repository for database operations."""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.db.models.page import Page, PageOcrStatus
from thereader.db.repositories.base_repository import BaseRepository
from thereader.db.repositories.book_repository import BookRepository
from thereader.utils.exceptions import NotFoundError


class PageRepository(BaseRepository[Page]):
    """Repository for Page model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize page repository."""
        super().__init__(Page, session)

    async def append_page(self, book_id: UUID, image_uri: str) -> Page:
        """
        Append a page at the next ordinal of a book.

        The book row is locked so concurrent appends for the same book
        serialize; the ``(book_id, page_number)`` unique constraint catches
        anything the lock does not (SQLite ignores ``FOR UPDATE``).

        Args:
            book_id: UUID of the parent book
            image_uri: Artifact URI of the stored page image

        Returns:
            Created Page instance

        Raises:
            NotFoundError: If the book no longer exists
            IntegrityError: If another writer took the same ordinal
        """
        book = await BookRepository(self.session).lock_book(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")

        current_max = await self.session.scalar(
            select(func.max(Page.page_number)).where(Page.book_id == book_id)  # type: ignore[arg-type]
        )
        page = Page(
            book_id=book_id,
            page_number=(current_max or 0) + 1,
            image_uri=image_uri,
        )
        return await self.create(page)

    async def list_for_book(self, book_id: UUID) -> list[Page]:
        """Get all pages of a book ordered by page number."""
        result = await self.session.execute(
            select(Page)
            .where(Page.book_id == book_id)  # type: ignore[arg-type]
            .order_by(Page.page_number)
        )
        return list(result.scalars().all())

    async def count_for_book(self, book_id: UUID) -> int:
        """Count pages of a book."""
        count = await self.session.scalar(
            select(func.count()).select_from(Page).where(Page.book_id == book_id)  # type: ignore[arg-type]
        )
        return count or 0

    async def mark_ocr_done(self, page_id: UUID) -> None:
        """Mark a page as processed by OCR."""
        await self.session.execute(
            update(Page)
            .where(Page.id == page_id)  # type: ignore[arg-type]
            .values(ocr_status=PageOcrStatus.OCR_DONE.value)
        )
