"""Detected text block shared by the OCR providers."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_CONFIDENCE = 0.9


class DetectedBlock(BaseModel):
    """One paragraph-level text region.

    Coordinates are pixels; which frame (stored or displayed) depends on the
    producer. Field names accept the snake and camel spellings vision models
    tend to return.
    """

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(validation_alias=AliasChoices("text", "ocr_text", "ocrText", "content"))
    x: float = Field(validation_alias=AliasChoices("x", "left"))
    y: float = Field(validation_alias=AliasChoices("y", "top"))
    width: float = Field(validation_alias=AliasChoices("width", "w"))
    height: float = Field(validation_alias=AliasChoices("height", "h"))
    confidence: float = Field(
        default=DEFAULT_CONFIDENCE,
        validation_alias=AliasChoices("confidence", "score", "confidence_score", "confidenceScore"),
    )

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> str:
        return str(v or "").strip()

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: object) -> float:
        if v is None:
            return DEFAULT_CONFIDENCE
        return min(1.0, max(0.0, float(v)))  # type: ignore[arg-type]
