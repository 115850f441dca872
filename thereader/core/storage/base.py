"""Artifact store interface shared by the local and S3 backends."""

import mimetypes
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

import structlog

from thereader.config import settings
from thereader.utils.exceptions import InvalidInputError, ReaderError
from thereader.utils.retry import retry_with_exponential_backoff

logger = structlog.get_logger(__name__)

OBJECTS_PREFIX = "/objects/"
CACHE_CONTROL = "public, max-age=3600"
STREAM_CHUNK_SIZE = 64 * 1024


@dataclass
class ArtifactStream:
    """Open blob ready to be streamed to a client."""

    key: str
    content_type: str
    chunks: AsyncIterator[bytes]
    content_length: int | None = None
    cache_control: str = CACHE_CONTROL


def content_type_for(key: str) -> str:
    """Infer a Content-Type from the key's extension."""
    guessed, _ = mimetypes.guess_type(key)
    return guessed or "application/octet-stream"


def validate_key(key: str) -> str:
    """Reject empty, absolute and parent-traversing keys."""
    if not key or key.startswith("/") or "\\" in key:
        raise InvalidInputError(f"Invalid artifact key: {key!r}")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise InvalidInputError(f"Invalid artifact key: {key!r}")
    return key


def uri_for(key: str) -> str:
    """Public URI served by the object route for a key."""
    return OBJECTS_PREFIX + key


def key_from_uri(uri: str | None) -> str | None:
    """
    Reverse ``uri_for``.

    Returns None for references this store does not own: local filesystem
    paths, ``file:`` URIs and absolute http(s) URLs left by older data.
    """
    if not uri or not uri.startswith(OBJECTS_PREFIX):
        return None
    key = uri[len(OBJECTS_PREFIX) :]
    try:
        return validate_key(key)
    except InvalidInputError:
        return None


class ArtifactStore(ABC):
    """Blob storage keyed by slash-separated strings.

    Backends implement the underscore primitives and classify their own
    failures into ``TransientError``, ``ArtifactNotFoundError`` or
    ``ArtifactStoreError``; this class adds retry and logging.
    """

    backend_name = "abstract"

    @abstractmethod
    async def _put(self, key: str, data: bytes, content_type: str) -> None: ...

    @abstractmethod
    async def _get(self, key: str) -> bytes: ...

    @abstractmethod
    async def _exists(self, key: str) -> bool: ...

    @abstractmethod
    async def _open_stream(self, key: str) -> tuple[AsyncIterator[bytes], int | None]: ...

    @abstractmethod
    async def _delete(self, key: str) -> None: ...

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """
        Store a blob, overwriting any existing one.

        Args:
            key: Artifact key
            data: Blob bytes
            content_type: MIME type; inferred from the key if omitted

        Returns:
            URI of the stored blob

        Raises:
            TransientError: If the backend kept failing after retries
            ArtifactStoreError: If the backend rejected the write
        """
        validate_key(key)
        await retry_with_exponential_backoff(
            self._put,
            key,
            data,
            content_type or content_type_for(key),
            max_retries=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
        )
        logger.debug("artifact_stored", backend=self.backend_name, key=key, size=len(data))
        return uri_for(key)

    async def get_bytes(self, key: str) -> bytes:
        """
        Read a whole blob.

        Raises:
            ArtifactNotFoundError: If the key does not exist
            TransientError: If the backend kept failing after retries
        """
        validate_key(key)
        return await retry_with_exponential_backoff(
            self._get,
            key,
            max_retries=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
        )

    async def exists(self, key: str) -> bool:
        """Check whether a blob exists."""
        validate_key(key)
        return await self._exists(key)

    async def stream(self, key: str) -> ArtifactStream:
        """
        Open a blob for streaming.

        The object is opened before returning, so a missing key raises
        ``ArtifactNotFoundError`` before any byte is produced.
        """
        validate_key(key)
        chunks, length = await self._open_stream(key)
        return ArtifactStream(
            key=key,
            content_type=content_type_for(key),
            chunks=chunks,
            content_length=length,
        )

    async def delete(self, key: str) -> None:
        """Delete a blob; failures are logged and never raised."""
        try:
            validate_key(key)
            await self._delete(key)
            logger.debug("artifact_deleted", backend=self.backend_name, key=key)
        except ReaderError as e:
            logger.warning(
                "artifact_delete_failed",
                backend=self.backend_name,
                key=key,
                error=str(e),
            )
