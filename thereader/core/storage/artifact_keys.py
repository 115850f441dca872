"""Key scheme for blobs in the artifact store."""

import mimetypes
import secrets
import time
from pathlib import PurePosixPath

UPLOADS_PREFIX = "uploads"
AUDIO_PREFIX = "audio"
ALIGNMENT_PREFIX = "alignment"

DEFAULT_IMAGE_EXTENSION = ".jpg"


def _image_extension(filename: str | None, content_type: str | None) -> str:
    if filename:
        suffix = PurePosixPath(filename).suffix.lower()
        if suffix:
            return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return ".jpg" if guessed == ".jpe" else guessed
    return DEFAULT_IMAGE_EXTENSION


def upload_key(
    filename: str | None = None,
    content_type: str | None = None,
    now_ms: int | None = None,
) -> str:
    """
    Build the key for an uploaded page image.

    Format: ``uploads/<unix_ms>-<random 7 digits><ext>``. The extension comes
    from the client filename, else the MIME type, else ``.jpg``.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = secrets.randbelow(9_000_000) + 1_000_000
    return f"{UPLOADS_PREFIX}/{now_ms}-{suffix}{_image_extension(filename, content_type)}"


def audio_key(content_uuid: str) -> str:
    """Key of the MP3 spoken for a content identity."""
    return f"{AUDIO_PREFIX}/tts_content_{content_uuid}.mp3"


def alignment_key(content_uuid: str) -> str:
    """Key of the raw character alignment for a content identity."""
    return f"{ALIGNMENT_PREFIX}/tts_content_{content_uuid}_alignment.json"


def normalized_alignment_key(content_uuid: str) -> str:
    """Key of the normalized character alignment for a content identity."""
    return f"{ALIGNMENT_PREFIX}/tts_content_{content_uuid}_normalized.json"


def content_uuid_from_audio_key(key: str) -> str | None:
    """Recover the content identity from an audio key, or None if it is not one."""
    prefix = f"{AUDIO_PREFIX}/tts_content_"
    if key.startswith(prefix) and key.endswith(".mp3"):
        return key[len(prefix) : -len(".mp3")]
    return None
