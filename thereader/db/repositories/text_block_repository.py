"""Text block repository for database operations."""

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.db.models.page import Page
from thereader.db.models.text_block import TextBlock
from thereader.db.repositories.base_repository import BaseRepository


class TextBlockRepository(BaseRepository[TextBlock]):
    """Repository for TextBlock model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize text block repository."""
        super().__init__(TextBlock, session)

    async def replace_for_page(
        self, page_id: UUID, blocks: list[TextBlock]
    ) -> list[TextBlock]:
        """
        Replace all blocks of a page.

        Deletion and insertion run in the caller's transaction; ``sequence``
        is assigned from list order.

        Args:
            page_id: UUID of the page
            blocks: New blocks in reading order

        Returns:
            Persisted TextBlock instances
        """
        await self.session.execute(
            delete(TextBlock).where(TextBlock.page_id == page_id)  # type: ignore[arg-type]
        )
        for sequence, block in enumerate(blocks):
            block.page_id = page_id
            block.sequence = sequence
            self.session.add(block)
        await self.session.flush()
        return blocks

    async def list_for_page(self, page_id: UUID) -> list[TextBlock]:
        """Get blocks of a page in insertion order."""
        result = await self.session.execute(
            select(TextBlock)
            .where(TextBlock.page_id == page_id)  # type: ignore[arg-type]
            .order_by(TextBlock.sequence)
        )
        return list(result.scalars().all())

    async def list_for_book(self, book_id: UUID) -> list[tuple[int, TextBlock]]:
        """Get ``(page_number, block)`` pairs of a book in page and insertion order."""
        result = await self.session.execute(
            select(Page.page_number, TextBlock)
            .select_from(TextBlock)
            .join(Page, TextBlock.page_id == Page.id)  # type: ignore[arg-type]
            .where(Page.book_id == book_id)  # type: ignore[arg-type]
            .order_by(Page.page_number, TextBlock.sequence)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def set_audio_uri(self, block_id: UUID, audio_uri: str | None) -> None:
        """Set or clear the cached audio reference of a block."""
        await self.session.execute(
            update(TextBlock)
            .where(TextBlock.id == block_id)  # type: ignore[arg-type]
            .values(audio_uri=audio_uri)
        )
