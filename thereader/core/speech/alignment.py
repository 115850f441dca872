"""Per-character timing of synthesized speech."""

import json
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError


class CharacterTiming(BaseModel):
    """When one character of the spoken text is heard."""

    character: str
    start_time_s: float
    end_time_s: float


Alignment = list[CharacterTiming]

_alignment_adapter = TypeAdapter(list[CharacterTiming])


def from_parallel_arrays(
    characters: Sequence[str] | None,
    starts: Sequence[float] | None,
    ends: Sequence[float] | None,
) -> Alignment | None:
    """
    Zip the provider's three parallel arrays into timings.

    Returns:
        Timings, or None when any array is missing or the lengths differ
    """
    if characters is None or starts is None or ends is None:
        return None
    if not (len(characters) == len(starts) == len(ends)):
        return None
    return [
        CharacterTiming(character=c, start_time_s=float(s), end_time_s=float(e))
        for c, s, e in zip(characters, starts, ends)
    ]


def dump_alignment(alignment: Alignment) -> bytes:
    """Serialize timings for the artifact store."""
    return json.dumps([t.model_dump() for t in alignment]).encode("utf-8")


def load_alignment(data: bytes) -> Alignment | None:
    """Deserialize timings; None if the payload is not a valid alignment."""
    try:
        return _alignment_adapter.validate_json(data)
    except ValidationError:
        return None


def alignment_payload(alignment: Alignment | None) -> list[dict[str, Any]] | None:
    """JSON-ready form used in API responses."""
    if alignment is None:
        return None
    return [t.model_dump() for t in alignment]
