"""Pydantic schemas for text block and speech endpoints."""

from uuid import UUID

from pydantic import BaseModel, Field

from thereader.api.schemas.common import CamelModel
from thereader.core.reading.service import SpeechPayload
from thereader.core.speech.alignment import CharacterTiming
from thereader.db.models.text_block import TextBlock


class TextBlockItem(CamelModel):
    id: UUID
    page_id: UUID
    sequence: int
    x: int
    y: int
    width: int
    height: int
    ocr_text: str | None
    confidence: float
    status: str
    audio_url: str | None

    @classmethod
    def from_block(cls, block: TextBlock) -> "TextBlockItem":
        return cls(
            id=block.id,
            page_id=block.page_id,
            sequence=block.sequence,
            x=block.x,
            y=block.y,
            width=block.width,
            height=block.height,
            ocr_text=block.ocr_text,
            confidence=block.confidence,
            status=block.status,
            audio_url=block.audio_uri,
        )


class DetectBlocksResponse(CamelModel):
    blocks: list[TextBlockItem]
    total_blocks: int


class SpeechResponse(BaseModel):
    """Audio location plus character timings for highlighting."""

    audio_url: str
    text: str
    alignment: list[CharacterTiming] | None = None
    normalized_alignment: list[CharacterTiming] | None = None

    @classmethod
    def from_payload(cls, payload: SpeechPayload) -> "SpeechResponse":
        return cls(
            audio_url=payload.audio_url,
            text=payload.text,
            alignment=payload.alignment,
            normalized_alignment=payload.normalized_alignment,
        )


class DirectSpeechRequest(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
