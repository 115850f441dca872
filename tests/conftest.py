"""Pytest configuration and fixtures."""

import io
import os
import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

# Settings are read at import time; point them at throwaway resources first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="thereader-test-"))
os.environ.setdefault("RETRY_INITIAL_DELAY", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("GOOGLE_VISION_API_KEY", "")
os.environ.setdefault("OPENAI_API_KEY", "")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import Session, SQLModel

import thereader.db.models  # noqa: F401
from thereader.api import dependencies
from thereader.api.security import create_access_token
from thereader.core.ingestion.cover_analysis import CoverAnalysis, Keyword
from thereader.core.speech.alignment import CharacterTiming
from thereader.core.speech.synthesizer import SpeechResult, TTSCredentials
from thereader.core.storage.local_store import LocalArtifactStore
from thereader.core.vision.image_info import EXIF_ORIENTATION_TAG
from thereader.core.vision.models import DetectedBlock
from thereader.db.models.user import User, UserPreferences
from thereader.db.session import enable_sqlite_foreign_keys
from thereader.main import app


def make_image(
    width: int = 40,
    height: int = 60,
    fmt: str = "PNG",
    orientation: int | None = None,
) -> bytes:
    """Encode a small solid image, optionally tagged with an EXIF orientation."""
    img = Image.new("RGB", (width, height), color=(240, 240, 230))
    out = io.BytesIO()
    if orientation is not None:
        exif = Image.Exif()
        exif[EXIF_ORIENTATION_TAG] = orientation
        img.save(out, format=fmt, exif=exif)
    else:
        img.save(out, format=fmt)
    return out.getvalue()


class FakeExtractor:
    """Block extractor returning canned blocks per call."""

    def __init__(self, pages: list[list[DetectedBlock]] | None = None) -> None:
        self.pages = pages
        self.calls = 0

    async def extract(self, image_bytes: bytes) -> list[DetectedBlock]:
        self.calls += 1
        if self.pages is not None:
            return self.pages[(self.calls - 1) % len(self.pages)]
        return [
            DetectedBlock(text=f"Heading of page {self.calls}", x=10, y=5, width=20, height=8),
            DetectedBlock(text=f"Body text of page {self.calls}", x=2, y=20, width=30, height=30),
        ]


class FakeCoverAnalyzer:
    """Cover analyzer with fixed metadata."""

    enabled = True

    def __init__(self) -> None:
        self.calls = 0

    async def analyze(self, image_bytes: bytes) -> CoverAnalysis:
        self.calls += 1
        return CoverAnalysis(
            title="The Quiet Lighthouse",
            author="Mara Quill",
            category="Fiction",
            categories=["Fiction", "Adventure"],
            keywords=[Keyword(label="Sea", emoji="🌊"), Keyword(label="Storm", emoji="⛈️")],
        )


class FakeSynthesizer:
    """Records the texts it is asked to speak."""

    def __init__(self, factory: "FakeSynthesizerFactory", credentials: TTSCredentials) -> None:
        credentials.require()
        self.factory = factory

    async def synthesize(self, text: str) -> SpeechResult:
        self.factory.texts.append(text)
        timings = [
            CharacterTiming(character=c, start_time_s=i * 0.1, end_time_s=(i + 1) * 0.1)
            for i, c in enumerate(text)
        ]
        return SpeechResult(
            audio=b"ID3" + text.encode("utf-8"),
            alignment=timings,
            normalized_alignment=timings,
        )


class FakeSynthesizerFactory:
    """Stands in for the ElevenLabs synthesizer class."""

    def __init__(self) -> None:
        self.texts: list[str] = []

    def __call__(self, credentials: TTSCredentials) -> FakeSynthesizer:
        return FakeSynthesizer(self, credentials)


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    """Create the schema in a fresh SQLite file."""
    path = tmp_path / "reader.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def sync_engine(database_path: Path) -> Generator[Engine, None, None]:
    """Synchronous engine for seeding and inspecting the test database."""
    engine = create_engine(f"sqlite:///{database_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(database_path: Path) -> async_sessionmaker[AsyncSession]:
    """Async session factory on the test database, foreign keys enforced."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(engine)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(tmp_path: Path) -> LocalArtifactStore:
    return LocalArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def fake_cover_analyzer() -> FakeCoverAnalyzer:
    return FakeCoverAnalyzer()


@pytest.fixture
def fake_synthesizer() -> FakeSynthesizerFactory:
    return FakeSynthesizerFactory()


def seed_user(
    sync_engine: Engine,
    email: str,
    api_key: str | None = "el-test-key",
    voice_id: str | None = "voice-1",
) -> User:
    """Insert a user with TTS preferences."""
    with Session(sync_engine, expire_on_commit=False) as session:
        user = User(email=email, display_name=email.split("@")[0])
        session.add(user)
        session.commit()
        session.refresh(user)
        if api_key or voice_id:
            session.add(
                UserPreferences(
                    user_id=user.id,
                    elevenlabs_api_key=api_key,
                    elevenlabs_voice_id=voice_id,
                )
            )
            session.commit()
        session.expunge(user)
    return user


@pytest.fixture
def user(sync_engine: Engine) -> User:
    return seed_user(sync_engine, "reader@example.com")


@pytest.fixture
def other_user(sync_engine: Engine) -> User:
    return seed_user(sync_engine, "someone.else@example.com")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def client(
    session_factory: async_sessionmaker[AsyncSession],
    store: LocalArtifactStore,
    fake_extractor: FakeExtractor,
    fake_cover_analyzer: FakeCoverAnalyzer,
    fake_synthesizer: FakeSynthesizerFactory,
) -> Generator[TestClient, None, None]:
    """API client wired to the test database, store and fake providers."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    overrides: dict[Any, Any] = {
        dependencies.get_db: override_get_db,
        dependencies.get_session_factory: lambda: session_factory,
        dependencies.get_artifact_store: lambda: store,
        dependencies.get_block_extractor: lambda: fake_extractor,
        dependencies.get_cover_analyzer: lambda: fake_cover_analyzer,
        dependencies.get_synthesizer_factory: lambda: fake_synthesizer,
    }
    app.dependency_overrides.update(overrides)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def image_factory():
    """Build encoded test images: ``image_factory(width, height, fmt, orientation)``."""
    return make_image


@pytest.fixture
def headers_for():
    """Bearer headers for a seeded user: ``headers_for(user)``."""
    return auth_headers


@pytest.fixture
def user_factory(sync_engine: Engine):
    """Seed additional users: ``user_factory(email, api_key=..., voice_id=...)``."""

    def factory(email: str, **kwargs: Any) -> User:
        return seed_user(sync_engine, email, **kwargs)

    return factory


@pytest.fixture
def book_factory(sync_engine: Engine, store: LocalArtifactStore):
    """
    Seed a completed book directly in the database.

    ``book_factory(owner, [["block", ...], ...], **book_fields)`` creates one
    page per inner list, writes a real page image into the store and returns
    ``(book, pages, blocks_by_page)``.
    """
    from thereader.db.models.book import Book, BookStatus
    from thereader.db.models.page import Page, PageOcrStatus
    from thereader.db.models.text_block import BlockStatus, TextBlock

    def factory(owner: User, pages: list[list[str]], **book_fields: Any):
        with Session(sync_engine, expire_on_commit=False) as session:
            book = Book(
                owner_id=owner.id,
                status=BookStatus.COMPLETED.value,
                **book_fields,
            )
            session.add(book)
            session.commit()
            session.refresh(book)

            page_rows: list[Page] = []
            block_rows: list[list[TextBlock]] = []
            for number, texts in enumerate(pages, start=1):
                key = f"uploads/seed-{book.id.hex}-{number}.png"
                path = store.root / key
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(make_image())
                page = Page(
                    book_id=book.id,
                    page_number=number,
                    image_uri=f"/objects/{key}",
                    ocr_status=PageOcrStatus.OCR_DONE.value,
                )
                session.add(page)
                session.commit()
                session.refresh(page)
                blocks = [
                    TextBlock(
                        page_id=page.id,
                        sequence=sequence,
                        x=10,
                        y=10 + 40 * sequence,
                        width=100,
                        height=30,
                        ocr_text=text,
                        status=BlockStatus.COMPLETED.value,
                    )
                    for sequence, text in enumerate(texts)
                ]
                session.add_all(blocks)
                session.commit()
                for block in blocks:
                    session.refresh(block)
                page_rows.append(page)
                block_rows.append(blocks)

            session.expunge_all()
        return book, page_rows, block_rows

    return factory
