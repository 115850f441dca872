"""Integration tests for the ingestion pipeline with fake providers."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from thereader.api.routes.sessions import run_ingestion
from thereader.core.capture.coordinator import CaptureCoordinator
from thereader.core.ingestion.pipeline import READY_LABEL, IngestionPipeline
from thereader.core.vision.extractor import BlockExtractor
from thereader.core.vision.models import DetectedBlock
from thereader.db.models.book import Book, BookStatus
from thereader.db.models.ingestion_log import IngestionLog
from thereader.db.models.page import Page, PageOcrStatus
from thereader.db.models.scanning_session import ScanningSession, SessionStatus
from thereader.db.models.text_block import TextBlock
from thereader.utils.exceptions import (
    FatalError,
    ProviderError,
    SessionInvalidError,
    TransientError,
)


async def captured_session(coordinator: CaptureCoordinator, owner_id, image_factory, pages: int = 3):
    """Create a session, upload pages and complete it."""
    handle = await coordinator.create_session(owner_id)
    for i in range(pages):
        await coordinator.add_page(handle.token, image_factory(), "image/png", f"page{i}.png")
    assert await coordinator.complete(handle.token) is True
    return handle


@pytest.fixture
def coordinator(session_factory, store) -> CaptureCoordinator:
    return CaptureCoordinator(session_factory, store)


def load_book(sync_engine, book_id) -> tuple[Book, ScanningSession, list[Page], list[TextBlock]]:
    with Session(sync_engine) as db:
        book = db.get(Book, book_id)
        session = db.exec(select(ScanningSession).where(ScanningSession.book_id == book_id)).one()
        pages = db.exec(select(Page).where(Page.book_id == book_id).order_by(Page.page_number)).all()
        blocks = db.exec(
            select(TextBlock).join(Page).where(Page.book_id == book_id).order_by(TextBlock.sequence)
        ).all()
        return book, session, list(pages), list(blocks)


class TestIngestionHappyPath:
    """Test a full run from captured pages to a completed book."""

    @pytest.mark.asyncio
    async def test_three_page_book_completes(
        self, coordinator, session_factory, store, user, image_factory,
        fake_extractor, fake_cover_analyzer, sync_engine,
    ):
        """Test pages get blocks, the book gets text and metadata, and progress ends ready."""
        handle = await captured_session(coordinator, user.id, image_factory)
        progress: list[tuple[str, int, int]] = []
        pipeline = IngestionPipeline(
            session_factory,
            store,
            fake_extractor,
            fake_cover_analyzer,
            on_progress=lambda label, done, total: progress.append((label, done, total)),
        )

        book = await pipeline.run(handle.token)

        assert book is not None
        assert book.status == BookStatus.COMPLETED.value
        for n in (1, 2, 3):
            assert f"=== Page {n} ===" in book.full_text
        assert book.title == "The Quiet Lighthouse"
        assert book.author == "Mara Quill"
        assert book.category == "Fiction"
        assert book.categories == ["Fiction", "Adventure"]
        assert book.keywords[0]["label"] == "Sea"

        stored_book, session, pages, blocks = load_book(sync_engine, handle.book_id)
        assert stored_book.cover == pages[0].image_uri
        assert session.status == SessionStatus.COMPLETED.value
        assert session.step_label == READY_LABEL
        assert session.steps_done == session.steps_total == 6
        assert [p.page_number for p in pages] == [1, 2, 3]
        assert all(p.ocr_status == PageOcrStatus.OCR_DONE.value for p in pages)
        assert len(blocks) == 6
        assert fake_extractor.calls == 3

        assert progress[-1] == (READY_LABEL, 6, 6)
        assert [done for _, done, _ in progress] == sorted(done for _, done, _ in progress)

    @pytest.mark.asyncio
    async def test_empty_page_is_skipped_with_warning(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer, sync_engine,
    ):
        """Test a page without text is marked done, skipped in the text and logged."""
        extractor = AsyncMock()
        extractor.extract.side_effect = [
            [DetectedBlock(text="First page words", x=1, y=1, width=10, height=10)],
            [],
        ]
        handle = await captured_session(coordinator, user.id, image_factory, pages=2)

        book = await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        assert book.full_text == "=== Page 1 ===\nFirst page words"
        with Session(sync_engine) as db:
            warnings = db.exec(
                select(IngestionLog).where(
                    IngestionLog.book_id == handle.book_id, IngestionLog.status == "warning"
                )
            ).all()
            pages = db.exec(select(Page).where(Page.book_id == handle.book_id)).all()
        assert len(warnings) == 1
        assert "page 2" in warnings[0].error_message
        assert all(p.ocr_status == PageOcrStatus.OCR_DONE.value for p in pages)

    @pytest.mark.asyncio
    async def test_rerun_replaces_blocks(
        self, coordinator, session_factory, store, user, image_factory,
        fake_extractor, fake_cover_analyzer, sync_engine,
    ):
        """Test a retried ingestion does not duplicate blocks."""
        handle = await captured_session(coordinator, user.id, image_factory, pages=2)
        pipeline = IngestionPipeline(session_factory, store, fake_extractor, fake_cover_analyzer)
        await pipeline.run(handle.token)

        with Session(sync_engine) as db:
            session = db.get(ScanningSession, handle.token)
            session.status = SessionStatus.FAILED.value
            db.add(session)
            db.commit()
        assert await coordinator.complete(handle.token) is True
        await pipeline.run(handle.token)

        _, _, _, blocks = load_book(sync_engine, handle.book_id)
        assert len(blocks) == 4


class TestIngestionFailures:
    """Test failure recording, retries and cancellation."""

    @pytest.mark.asyncio
    async def test_permanent_failure_marks_book_and_session_failed(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer, sync_engine,
    ):
        """Test a provider rejection fails the run and records the detail."""
        extractor = AsyncMock()
        extractor.extract.side_effect = ProviderError("Vision API error: 403 key revoked")
        handle = await captured_session(coordinator, user.id, image_factory, pages=2)

        with pytest.raises(ProviderError):
            await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        book, session, _, _ = load_book(sync_engine, handle.book_id)
        assert book.status == BookStatus.FAILED.value
        assert book.full_text is None
        assert session.status == SessionStatus.FAILED.value
        assert "key revoked" in session.detail
        with Session(sync_engine) as db:
            failed = db.exec(
                select(IngestionLog).where(
                    IngestionLog.book_id == handle.book_id, IngestionLog.status == "failed"
                )
            ).one()
        assert failed.pipeline_stage == "page_ocr"

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer,
    ):
        """Test a transient OCR failure is retried and the run completes."""
        extractor = AsyncMock()
        extractor.extract.side_effect = [
            TransientError("503"),
            [DetectedBlock(text="Recovered text", x=0, y=0, width=5, height=5)],
        ]
        handle = await captured_session(coordinator, user.id, image_factory, pages=1)

        book = await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        assert book.status == BookStatus.COMPLETED.value
        assert extractor.extract.await_count == 2

    @pytest.mark.asyncio
    async def test_book_without_text_fails(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer, sync_engine,
    ):
        """Test a book where no page has text ends failed."""
        extractor = AsyncMock()
        extractor.extract.return_value = []
        handle = await captured_session(coordinator, user.id, image_factory, pages=2)

        with pytest.raises(FatalError) as exc_info:
            await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        assert exc_info.value.code == "no_text"
        book, session, _, _ = load_book(sync_engine, handle.book_id)
        assert book.status == BookStatus.FAILED.value
        assert session.status == SessionStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_session_must_be_processing(
        self, coordinator, session_factory, store, user, image_factory,
        fake_extractor, fake_cover_analyzer,
    ):
        """Test a session still capturing cannot be ingested."""
        handle = await coordinator.create_session(user.id)
        await coordinator.add_page(handle.token, image_factory(), "image/png")

        with pytest.raises(SessionInvalidError):
            await IngestionPipeline(session_factory, store, fake_extractor, fake_cover_analyzer).run(handle.token)

    @pytest.mark.asyncio
    async def test_database_error_while_preparing_fails_session(
        self, coordinator, session_factory, store, user, image_factory,
        fake_extractor, fake_cover_analyzer, sync_engine,
    ):
        """Test a database error in the prepare stage does not leave the session processing."""
        handle = await captured_session(coordinator, user.id, image_factory, pages=1)
        pipeline = IngestionPipeline(session_factory, store, fake_extractor, fake_cover_analyzer)
        broken = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))

        with patch.object(pipeline, "_record", broken):
            with pytest.raises(OperationalError):
                await pipeline.run(handle.token)

        book, session, _, _ = load_book(sync_engine, handle.book_id)
        assert book.status == BookStatus.FAILED.value
        assert session.status == SessionStatus.FAILED.value
        assert "disk I/O error" in session.detail
        with Session(sync_engine) as db:
            failed = db.exec(
                select(IngestionLog).where(
                    IngestionLog.book_id == handle.book_id, IngestionLog.status == "failed"
                )
            ).one()
        assert failed.pipeline_stage == "prepare"
        assert fake_extractor.calls == 0

    @pytest.mark.asyncio
    async def test_background_runner_absorbs_unexpected_errors(self):
        """Test the background entry point logs rather than raises unexpected errors."""
        pipeline = AsyncMock()
        pipeline.run.side_effect = RuntimeError("connection reset")

        await run_ingestion(pipeline, "some-token")

        pipeline.run.assert_awaited_once_with("some-token")

    @pytest.mark.asyncio
    async def test_deleted_book_cancels_run(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer, sync_engine,
    ):
        """Test deleting the book mid-run stops the pipeline without errors."""
        handle = await captured_session(coordinator, user.id, image_factory, pages=3)

        async def delete_then_extract(image_bytes):
            async with session_factory() as db:
                book = await db.get(Book, handle.book_id)
                if book is not None:
                    await db.delete(book)
                    await db.commit()
            return [DetectedBlock(text="Too late", x=0, y=0, width=5, height=5)]

        extractor = AsyncMock()
        extractor.extract.side_effect = delete_then_extract

        result = await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        assert result is None
        assert extractor.extract.await_count == 1
        with Session(sync_engine) as db:
            assert db.get(Book, handle.book_id) is None
            assert db.get(ScanningSession, handle.token) is None


class FlakyPrimary:
    """Primary OCR that fails the first call."""

    def __init__(self) -> None:
        self.calls = 0

    async def detect(self, image_bytes):
        self.calls += 1
        if self.calls == 1:
            raise TransientError("Vision API error: 503")
        return [DetectedBlock(text="Primary text", x=0, y=0, width=5, height=5)]


class StubFallback:
    """Fallback OCR returning one block in the displayed frame."""

    def __init__(self) -> None:
        self.calls = 0

    async def detect(self, image_bytes, info):
        self.calls += 1
        return [DetectedBlock(text="Fallback text", x=2, y=3, width=20, height=10)]


class TestExtractorInPipeline:
    """Test the real extractor's fallback inside an ingestion run."""

    @pytest.mark.asyncio
    async def test_primary_failure_falls_back(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer, sync_engine,
    ):
        """Test a failing primary provider hands the page to the fallback."""
        primary, fallback = FlakyPrimary(), StubFallback()
        extractor = BlockExtractor(primary=primary, fallback=fallback)
        handle = await captured_session(coordinator, user.id, image_factory, pages=1)

        book = await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        assert book.status == BookStatus.COMPLETED.value
        assert "Fallback text" in book.full_text
        assert (primary.calls, fallback.calls) == (1, 1)
        _, _, _, blocks = load_book(sync_engine, handle.book_id)
        assert [(b.x, b.y, b.width, b.height) for b in blocks] == [(2, 3, 20, 10)]


class RawFramePrimary:
    """Primary OCR reporting one block in stored (pre-rotation) pixels."""

    async def detect(self, image_bytes):
        return [DetectedBlock(text="Rotated paragraph", x=100, y=200, width=300, height=400)]


class TestRotatedPhoto:
    """Test rectangles of an EXIF-rotated photo end up in the displayed frame."""

    @pytest.mark.asyncio
    async def test_extractor_maps_orientation_six(self, image_factory):
        """Test a 2000x3000 photo tagged orientation 6 is mapped to displayed pixels."""
        image = image_factory(2000, 3000, "JPEG", orientation=6)

        (block,) = await BlockExtractor(primary=RawFramePrimary()).extract(image)

        assert (block.x, block.y, block.width, block.height) == (2400, 100, 400, 300)

    @pytest.mark.asyncio
    async def test_persisted_rectangle_is_displayed_frame(
        self, coordinator, session_factory, store, user, image_factory,
        fake_cover_analyzer, sync_engine,
    ):
        """Test the stored block of a rotated page uses displayed coordinates."""
        handle = await coordinator.create_session(user.id)
        await coordinator.add_page(
            handle.token, image_factory(2000, 3000, "JPEG", orientation=6), "image/jpeg", "page.jpg"
        )
        assert await coordinator.complete(handle.token) is True
        extractor = BlockExtractor(primary=RawFramePrimary())

        await IngestionPipeline(session_factory, store, extractor, fake_cover_analyzer).run(handle.token)

        _, _, _, blocks = load_book(sync_engine, handle.book_id)
        assert [(b.x, b.y, b.width, b.height) for b in blocks] == [(2400, 100, 400, 300)]
        assert blocks[0].ocr_text == "Rotated paragraph"
