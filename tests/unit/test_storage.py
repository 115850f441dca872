"""Unit tests for artifact keys, URIs and the local artifact store."""

import pytest

from thereader.core.storage.base import content_type_for, key_from_uri, uri_for, validate_key
from thereader.core.storage.local_store import LocalArtifactStore
from thereader.utils.exceptions import ArtifactNotFoundError, InvalidInputError


class TestKeysAndUris:
    """Test key validation and URI mapping."""

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "../secret", "a/../../b", "a//b", "a\\b"])
    def test_invalid_keys_rejected(self, key):
        """Test empty, absolute and traversing keys are rejected."""
        with pytest.raises(InvalidInputError):
            validate_key(key)

    def test_uri_round_trip(self):
        """Test a store URI maps back to its key."""
        assert uri_for("audio/x.mp3") == "/objects/audio/x.mp3"
        assert key_from_uri("/objects/audio/x.mp3") == "audio/x.mp3"

    @pytest.mark.parametrize(
        "uri",
        [
            None,
            "",
            "/var/lib/reader/audio/block_1.mp3",
            "file:///tmp/audio.mp3",
            "https://cdn.example.com/audio/x.mp3",
            "/objects/../etc/passwd",
        ],
    )
    def test_foreign_references_have_no_key(self, uri):
        """Test legacy filesystem paths and foreign URLs are not store keys."""
        assert key_from_uri(uri) is None

    def test_content_type_inferred_from_extension(self):
        """Test Content-Type inference by extension."""
        assert content_type_for("audio/tts_content_x.mp3") == "audio/mpeg"
        assert content_type_for("alignment/x_alignment.json") == "application/json"
        assert content_type_for("uploads/1-1234567.png") == "image/png"
        assert content_type_for("uploads/no-extension") == "application/octet-stream"


class TestLocalArtifactStore:
    """Test the filesystem backend."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, tmp_path):
        """Test stored bytes are read back and the URI is returned."""
        store = LocalArtifactStore(tmp_path)

        uri = await store.put("uploads/1-1000000.jpg", b"jpeg-bytes", "image/jpeg")

        assert uri == "/objects/uploads/1-1000000.jpg"
        assert await store.get_bytes("uploads/1-1000000.jpg") == b"jpeg-bytes"
        assert await store.exists("uploads/1-1000000.jpg") is True
        assert (tmp_path / "uploads" / "1-1000000.jpg").read_bytes() == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_put_overwrites(self, tmp_path):
        """Test writing the same key twice keeps the last bytes."""
        store = LocalArtifactStore(tmp_path)
        await store.put("audio/a.mp3", b"one")
        await store.put("audio/a.mp3", b"two")

        assert await store.get_bytes("audio/a.mp3") == b"two"
        assert not list((tmp_path / "audio").glob(".tmp-*"))

    @pytest.mark.asyncio
    async def test_missing_key(self, tmp_path):
        """Test reading a missing key raises ArtifactNotFoundError."""
        store = LocalArtifactStore(tmp_path)

        assert await store.exists("audio/missing.mp3") is False
        with pytest.raises(ArtifactNotFoundError):
            await store.get_bytes("audio/missing.mp3")
        with pytest.raises(ArtifactNotFoundError):
            await store.stream("audio/missing.mp3")

    @pytest.mark.asyncio
    async def test_stream(self, tmp_path):
        """Test streaming yields the whole blob with its metadata."""
        store = LocalArtifactStore(tmp_path)
        payload = b"x" * 200_000
        await store.put("audio/long.mp3", payload)

        stream = await store.stream("audio/long.mp3")
        received = b"".join([chunk async for chunk in stream.chunks])

        assert received == payload
        assert stream.content_type == "audio/mpeg"
        assert stream.content_length == len(payload)
        assert stream.cache_control == "public, max-age=3600"

    @pytest.mark.asyncio
    async def test_delete_is_best_effort(self, tmp_path):
        """Test deleting existing and missing keys never raises."""
        store = LocalArtifactStore(tmp_path)
        await store.put("uploads/a.png", b"png")

        await store.delete("uploads/a.png")
        await store.delete("uploads/a.png")
        await store.delete("../outside")

        assert await store.exists("uploads/a.png") is False
