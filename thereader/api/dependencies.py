"""FastAPI dependencies for route handlers."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thereader.core.capture.coordinator import CaptureCoordinator
from thereader.core.ingestion.cover_analysis import CoverAnalyzer
from thereader.core.ingestion.pipeline import IngestionPipeline
from thereader.core.reading.service import ReadingService, SynthesizerFactory
from thereader.core.speech.synthesizer import ElevenLabsSynthesizer
from thereader.core.storage import ArtifactStore
from thereader.core.storage import get_artifact_store as build_artifact_store
from thereader.core.vision.extractor import BlockExtractor
from thereader.db.session import AsyncSessionLocal, get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide async database session to route handlers.

    This dependency function provides an async database session with automatic
    cleanup and transaction management (commit on success, rollback on error).

    Yields:
        AsyncSession: Database session for the request
    """
    async for session in get_session():
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for the short transactions of capture and ingestion."""
    return AsyncSessionLocal


def get_artifact_store() -> ArtifactStore:
    return build_artifact_store()


@lru_cache(maxsize=1)
def get_block_extractor() -> BlockExtractor:
    return BlockExtractor.from_settings()


@lru_cache(maxsize=1)
def get_cover_analyzer() -> CoverAnalyzer:
    return CoverAnalyzer()


def get_synthesizer_factory() -> SynthesizerFactory:
    return ElevenLabsSynthesizer


def get_capture_coordinator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
) -> CaptureCoordinator:
    return CaptureCoordinator(session_factory, store)


def get_ingestion_pipeline(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
    extractor: BlockExtractor = Depends(get_block_extractor),  # noqa: B008
    cover_analyzer: CoverAnalyzer = Depends(get_cover_analyzer),  # noqa: B008
) -> IngestionPipeline:
    return IngestionPipeline(session_factory, store, extractor, cover_analyzer)


def get_reading_service(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
    extractor: BlockExtractor = Depends(get_block_extractor),  # noqa: B008
    synthesizer_factory: SynthesizerFactory = Depends(get_synthesizer_factory),  # noqa: B008
) -> ReadingService:
    return ReadingService(db, store, extractor, synthesizer_factory)
