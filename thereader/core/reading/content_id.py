"""Content identity for speech caching."""

import hashlib


def content_uuid(text: str) -> str:
    """
    Stable identity of a text for audio reuse.

    The first 32 hex characters of SHA-256 over the trimmed text, laid out
    as 8-4-4-4-12. It looks like a UUID but carries no version bits.
    """
    digest = hashlib.sha256(text.strip().encode("utf-8")).hexdigest()
    return "-".join(
        (digest[0:8], digest[8:12], digest[12:16], digest[16:20], digest[20:32])
    )
