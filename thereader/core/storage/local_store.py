"""Artifact store backed by a directory on the local filesystem."""

import asyncio
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path
from typing import BinaryIO

from thereader.core.storage.base import STREAM_CHUNK_SIZE, ArtifactStore
from thereader.utils.exceptions import (
    ArtifactNotFoundError,
    ArtifactStoreError,
    InvalidInputError,
)


class LocalArtifactStore(ArtifactStore):
    """Stores each key as a file below ``root``; writes are atomic renames."""

    backend_name = "local"

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise InvalidInputError(f"Artifact key escapes storage root: {key!r}")
        return path

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to write {key}: {e}") from e

    async def _get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Artifact {key} not found") from e
        except OSError as e:
            raise ArtifactStoreError(f"Failed to read {key}: {e}") from e

    async def _exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)

    async def _open_stream(self, key: str) -> tuple[AsyncIterator[bytes], int | None]:
        path = self._path(key)
        try:
            f = await asyncio.to_thread(path.open, "rb")
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Artifact {key} not found") from e
        except OSError as e:
            raise ArtifactStoreError(f"Failed to open {key}: {e}") from e
        size = os.fstat(f.fileno()).st_size
        return self._iter_file(f), size

    async def _iter_file(self, f: BinaryIO) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            f.close()

    async def _delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to delete {key}: {e}") from e
