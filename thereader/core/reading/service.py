"""Reading service: owner-scoped book access and cached speech for text blocks."""

import asyncio
import functools
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from thereader.core.reading.content_id import content_uuid
from thereader.core.speech.alignment import Alignment, dump_alignment, load_alignment
from thereader.core.speech.synthesizer import ElevenLabsSynthesizer, TTSCredentials
from thereader.core.storage.artifact_keys import (
    alignment_key,
    audio_key,
    content_uuid_from_audio_key,
    normalized_alignment_key,
)
from thereader.core.storage.base import ArtifactStore, key_from_uri, uri_for
from thereader.core.vision.extractor import BlockExtractor
from thereader.db.models.book import Book
from thereader.db.models.ingestion_log import IngestionLog
from thereader.db.models.page import Page
from thereader.db.models.text_block import BlockStatus, TextBlock
from thereader.db.repositories.book_repository import BookRepository
from thereader.db.repositories.ingestion_log_repository import IngestionLogRepository
from thereader.db.repositories.page_repository import PageRepository
from thereader.db.repositories.text_block_repository import TextBlockRepository
from thereader.utils.exceptions import (
    ArtifactNotFoundError,
    ConfigMissingError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)

logger = structlog.get_logger(__name__)

SEARCHABLE_WORD_LIMIT = 500
ROW_TOLERANCE_PX = 50

SynthesizerFactory = Callable[[TTSCredentials], Any]

# One lock per content identity so concurrent requests for the same text
# synthesize once per process.
_speech_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _speech_lock(identity: str) -> asyncio.Lock:
    lock = _speech_locks.get(identity)
    if lock is None:
        lock = asyncio.Lock()
        _speech_locks[identity] = lock
    return lock


@dataclass
class BookSummary:
    book: Book
    searchable_text: str
    keyword_text: str


@dataclass
class BookDetails:
    book: Book
    pages: list[Page]
    recent_logs: list[IngestionLog] = field(default_factory=list)


@dataclass
class SpeechPayload:
    """Playable audio plus the timings used for highlighting."""

    audio_url: str
    text: str
    alignment: Alignment | None = None
    normalized_alignment: Alignment | None = None


def _reading_order(a: TextBlock, b: TextBlock) -> int:
    y_diff = a.y - b.y
    if abs(y_diff) > ROW_TOLERANCE_PX:
        return y_diff
    return a.x - b.x


class ReadingService:
    """
    Read-side operations for an authenticated owner.

    Books of other owners raise ``PermissionDeniedError`` and unknown ids
    raise ``NotFoundError``. Nothing here retries; provider and store errors
    surface to the caller as classified.
    """

    def __init__(
        self,
        session: AsyncSession,
        store: ArtifactStore,
        extractor: BlockExtractor | None = None,
        synthesizer_factory: SynthesizerFactory = ElevenLabsSynthesizer,
    ) -> None:
        self.session = session
        self.store = store
        self.extractor = extractor
        self.synthesizer_factory = synthesizer_factory

    # Books

    async def list_books(self, owner_id: UUID, category: str | None = None) -> list[BookSummary]:
        """
        List the owner's books, newest first.

        Args:
            owner_id: Authenticated user
            category: Primary category to match case-insensitively; ``"all"``
                or None means no filter

        Returns:
            Books with lower-cased search text derived from their blocks
        """
        if category and category.strip().lower() == "all":
            category = None
        books = await BookRepository(self.session).list_for_owner(owner_id, category)
        texts = await BookRepository(self.session).block_texts_by_book([b.id for b in books])

        summaries = []
        for book in books:
            words = " ".join(texts.get(book.id, [])).split()
            summaries.append(
                BookSummary(
                    book=book,
                    searchable_text=" ".join(words[:SEARCHABLE_WORD_LIMIT]).lower(),
                    keyword_text=" ".join(
                        str(k.get("label", "")) for k in book.keywords or [] if isinstance(k, dict)
                    ).lower(),
                )
            )
        logger.info("books_listed", owner_id=str(owner_id), category=category, count=len(summaries))
        return summaries

    async def get_book(self, owner_id: UUID, book_id: UUID) -> BookDetails:
        """Book with its pages ordered by number and recent ingestion issues."""
        book = await self._owned_book(owner_id, book_id)
        pages = await PageRepository(self.session).list_for_book(book_id)
        logs = await IngestionLogRepository(self.session).recent_issues(book_id)
        return BookDetails(book=book, pages=pages, recent_logs=logs)

    async def get_pages(self, owner_id: UUID, book_id: UUID) -> list[Page]:
        await self._owned_book(owner_id, book_id)
        return await PageRepository(self.session).list_for_book(book_id)

    async def get_full_text(self, owner_id: UUID, book_id: UUID) -> tuple[Book, int, str]:
        """
        Export the book's text in reading order.

        Blocks are ordered top to bottom, treating blocks whose tops are
        within 50 px as one row read left to right.

        Returns:
            (book, page count, text)
        """
        book = await self._owned_book(owner_id, book_id)
        pages = await PageRepository(self.session).list_for_book(book_id)
        blocks_by_page: dict[int, list[TextBlock]] = {}
        for page_number, block in await TextBlockRepository(self.session).list_for_book(book_id):
            blocks_by_page.setdefault(page_number, []).append(block)

        parts = [f"Book: {book.title or ''}\n"]
        if book.author:
            parts.append(f"Author: {book.author}\n\n")
        for page in pages:
            parts.append(f"\n--- Page {page.page_number} ---\n\n")
            ordered = sorted(
                blocks_by_page.get(page.page_number, []),
                key=functools.cmp_to_key(_reading_order),
            )
            for block in ordered:
                if block.ocr_text and block.ocr_text.strip():
                    parts.append(block.ocr_text.strip() + "\n")
        return book, len(pages), "".join(parts)

    async def delete_book(self, owner_id: UUID, book_id: UUID) -> None:
        """
        Delete a book with its pages, blocks and sessions.

        Page images are removed from the store afterwards on a best-effort
        basis. Speech audio is shared by content and is never deleted.
        """
        book = await self._owned_book(owner_id, book_id)
        pages = await PageRepository(self.session).list_for_book(book_id)
        image_keys = [k for k in (key_from_uri(p.image_uri) for p in pages) if k]

        await BookRepository(self.session).delete(book)
        await self.session.commit()

        for key in image_keys:
            await self.store.delete(key)
        logger.info("book_deleted", book_id=str(book_id), images=len(image_keys))

    async def cleanup_empty_books(self, owner_id: UUID) -> int:
        """Delete the owner's books that have no pages and no active capture session."""
        repo = BookRepository(self.session)
        books = await repo.list_empty_books(owner_id)
        for book in books:
            await repo.delete(book)
        await self.session.commit()
        logger.info("empty_books_cleaned", owner_id=str(owner_id), deleted=len(books))
        return len(books)

    # Pages and blocks

    async def get_blocks(self, owner_id: UUID, page_id: UUID) -> list[TextBlock]:
        page = await self._owned_page(owner_id, page_id)
        return await TextBlockRepository(self.session).list_for_page(page.id)

    async def detect_blocks(self, owner_id: UUID, page_id: UUID) -> list[TextBlock]:
        """
        Re-run text detection for one page and replace its blocks.

        Raises:
            ConfigMissingError: If no extractor is available
            NotFoundError: If the page image is not in the artifact store
        """
        page = await self._owned_page(owner_id, page_id)
        if self.extractor is None:
            raise ConfigMissingError("Text detection is not configured", code="ocr_config_missing")
        key = key_from_uri(page.image_uri)
        if key is None:
            raise NotFoundError(f"Image for page {page_id} is not available")

        image = await self.store.get_bytes(key)
        detected = await self.extractor.extract(image)
        blocks = await TextBlockRepository(self.session).replace_for_page(
            page.id,
            [
                TextBlock(
                    page_id=page.id,
                    sequence=0,
                    x=int(b.x),
                    y=int(b.y),
                    width=int(b.width),
                    height=int(b.height),
                    ocr_text=b.text,
                    confidence=b.confidence,
                    status=BlockStatus.COMPLETED.value,
                )
                for b in detected
            ],
        )
        await PageRepository(self.session).mark_ocr_done(page.id)
        await self.session.commit()
        logger.info("blocks_detected", page_id=str(page_id), blocks=len(blocks))
        return blocks

    # Speech

    async def speak_block(
        self, owner_id: UUID, block_id: UUID, credentials: TTSCredentials
    ) -> SpeechPayload:
        """
        Return audio and timings for a block, synthesizing at most once per text.

        A block whose ``audio_uri`` still resolves is served from the store.
        A stale or legacy reference is cleared and treated as a miss. On a
        miss, audio already spoken for the same text is reused; otherwise
        the text is synthesized and stored before ``audio_uri`` is saved.

        Raises:
            InvalidInputError: Block has no text
            ConfigMissingError: Synthesis needed but credentials incomplete
        """
        block = await self.session.get(TextBlock, block_id)
        if block is None:
            raise NotFoundError(f"Text block {block_id} not found")
        await self._owned_page(owner_id, block.page_id)

        text = (block.ocr_text or "").strip()
        if not text:
            raise InvalidInputError("Text block has no text", code="no_text")

        key = key_from_uri(block.audio_uri)
        if key is not None and await self.store.exists(key):
            identity = content_uuid_from_audio_key(key) or content_uuid(text)
            alignment, normalized = await self._load_alignments(identity)
            logger.info("speech_cache_hit", block_id=str(block_id))
            return SpeechPayload(
                audio_url=block.audio_uri or uri_for(key),
                text=text,
                alignment=alignment,
                normalized_alignment=normalized,
            )

        blocks = TextBlockRepository(self.session)
        if block.audio_uri:
            logger.info("speech_reference_cleared", block_id=str(block_id), audio_uri=block.audio_uri)
            await blocks.set_audio_uri(block_id, None)

        payload = await self._speak(text, credentials)
        await blocks.set_audio_uri(block_id, payload.audio_url)
        await self.session.commit()
        return payload

    async def speak_text(
        self, owner_id: UUID, text: str, credentials: TTSCredentials
    ) -> SpeechPayload:
        """Speak ad-hoc text through the same content cache; nothing is persisted in the database."""
        text = (text or "").strip()
        if not text:
            raise InvalidInputError("Text is required", code="no_text")
        logger.info("direct_speech_request", owner_id=str(owner_id), text_length=len(text))
        return await self._speak(text, credentials)

    async def _speak(self, text: str, credentials: TTSCredentials) -> SpeechPayload:
        identity = content_uuid(text)
        key = audio_key(identity)

        async with _speech_lock(identity):
            if await self.store.exists(key):
                alignment, normalized = await self._load_alignments(identity)
                logger.info("speech_content_reused", content_uuid=identity)
            else:
                synthesizer = self.synthesizer_factory(credentials)
                result = await synthesizer.synthesize(text)
                await self.store.put(key, result.audio, "audio/mpeg")

                uploads = []
                if result.alignment is not None:
                    uploads.append(
                        self.store.put(
                            alignment_key(identity),
                            dump_alignment(result.alignment),
                            "application/json",
                        )
                    )
                if result.normalized_alignment is not None:
                    uploads.append(
                        self.store.put(
                            normalized_alignment_key(identity),
                            dump_alignment(result.normalized_alignment),
                            "application/json",
                        )
                    )
                await asyncio.gather(*uploads)
                alignment, normalized = result.alignment, result.normalized_alignment
                logger.info("speech_content_stored", content_uuid=identity)

        return SpeechPayload(
            audio_url=uri_for(key),
            text=text,
            alignment=alignment,
            normalized_alignment=normalized,
        )

    async def _load_alignments(self, identity: str) -> tuple[Alignment | None, Alignment | None]:
        return await asyncio.gather(
            self._load_optional(alignment_key(identity)),
            self._load_optional(normalized_alignment_key(identity)),
        )

    async def _load_optional(self, key: str) -> Alignment | None:
        try:
            data = await self.store.get_bytes(key)
        except ArtifactNotFoundError:
            return None
        return load_alignment(data)

    # Ownership

    async def _owned_book(self, owner_id: UUID, book_id: UUID) -> Book:
        book = await self.session.get(Book, book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        if book.owner_id != owner_id:
            logger.warning("book_access_denied", book_id=str(book_id), owner_id=str(owner_id))
            raise PermissionDeniedError("You do not have access to this book")
        return book

    async def _owned_page(self, owner_id: UUID, page_id: UUID) -> Page:
        page = await self.session.get(Page, page_id)
        if page is None:
            raise NotFoundError(f"Page {page_id} not found")
        await self._owned_book(owner_id, page.book_id)
        return page

