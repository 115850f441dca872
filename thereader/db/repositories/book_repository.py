"""Book repository for database operations."""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.db.models.book import Book
from thereader.db.models.page import Page
from thereader.db.models.scanning_session import ScanningSession, SessionStatus
from thereader.db.models.text_block import TextBlock
from thereader.db.repositories.base_repository import BaseRepository


class BookRepository(BaseRepository[Book]):
    """Repository for Book model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize book repository."""
        super().__init__(Book, session)

    async def create_book(self, owner_id: UUID) -> Book:
        """
        Create an empty book that is still being captured.

        Args:
            owner_id: UUID of the owning user

        Returns:
            Created Book instance
        """
        return await self.create(Book(owner_id=owner_id))

    async def lock_book(self, book_id: UUID) -> Book | None:
        """Load a book with a row lock held until the transaction ends."""
        result = await self.session.execute(
            select(Book).where(Book.id == book_id).with_for_update()  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def list_for_owner(
        self, owner_id: UUID, category: str | None = None
    ) -> list[Book]:
        """
        List an owner's books, newest first.

        Args:
            owner_id: UUID of the owning user
            category: Optional primary category, matched case-insensitively

        Returns:
            List of Book instances
        """
        query = select(Book).where(Book.owner_id == owner_id)  # type: ignore[arg-type]
        if category:
            query = query.where(func.lower(Book.category) == category.lower())
        query = query.order_by(Book.created_at.desc())  # type: ignore[attr-defined]
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def block_texts_by_book(self, book_ids: list[UUID]) -> dict[UUID, list[str]]:
        """
        Collect block texts per book in page and insertion order.

        Args:
            book_ids: Books to collect text for

        Returns:
            Mapping of book id to its ordered, non-empty block texts
        """
        texts: dict[UUID, list[str]] = defaultdict(list)
        if not book_ids:
            return texts
        result = await self.session.execute(
            select(Page.book_id, TextBlock.ocr_text)
            .join(TextBlock, TextBlock.page_id == Page.id)  # type: ignore[arg-type]
            .where(Page.book_id.in_(book_ids))  # type: ignore[attr-defined]
            .order_by(Page.book_id, Page.page_number, TextBlock.sequence)
        )
        for book_id, text in result.all():
            if text:
                texts[book_id].append(text)
        return texts

    async def list_empty_books(self, owner_id: UUID) -> list[Book]:
        """Books of an owner with no pages and no active capture session."""
        has_pages = exists().where(Page.book_id == Book.id)
        has_active_session = exists().where(
            ScanningSession.book_id == Book.id,
            ScanningSession.status == SessionStatus.ACTIVE.value,
        )
        result = await self.session.execute(
            select(Book).where(
                Book.owner_id == owner_id,  # type: ignore[arg-type]
                ~has_pages,
                ~has_active_session,
            )
        )
        return list(result.scalars().all())
