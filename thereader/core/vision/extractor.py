"""Block extraction: primary OCR, fallback OCR and frame reconciliation."""

import structlog

from thereader.core.vision.document_ocr import GoogleVisionOCR
from thereader.core.vision.fallback_ocr import OpenAIVisionOCR
from thereader.core.vision.geometry import Rect, clip_and_round, to_displayed
from thereader.core.vision.image_info import ImageInfo, read_image_info
from thereader.core.vision.models import DetectedBlock
from thereader.utils.exceptions import ConfigMissingError, ReaderError

logger = structlog.get_logger(__name__)


class BlockExtractor:
    """
    Detect paragraph blocks in a page photo, in displayed-image pixels.

    Google Vision is tried first; the OpenAI model is used when Google is not
    configured, fails, or finds nothing. Results are clipped to the displayed
    bounds, rounded and stripped of zero-area boxes. The extractor never
    touches storage and never retries.
    """

    def __init__(
        self,
        primary: GoogleVisionOCR | None = None,
        fallback: OpenAIVisionOCR | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback

    @classmethod
    def from_settings(cls) -> "BlockExtractor":
        """Build with whichever providers have credentials configured."""
        primary = fallback = None
        try:
            primary = GoogleVisionOCR()
        except ConfigMissingError:
            logger.info("vision_provider_unavailable", provider="google_vision")
        try:
            fallback = OpenAIVisionOCR()
        except ConfigMissingError:
            logger.info("vision_provider_unavailable", provider="openai")
        return cls(primary=primary, fallback=fallback)

    async def extract(self, image_bytes: bytes) -> list[DetectedBlock]:
        """
        Extract blocks from image bytes.

        Returns:
            Blocks in reading order as reported by the provider; empty if the
            page has no text

        Raises:
            BadImageError: If the image header cannot be decoded
            ConfigMissingError: If no provider is configured
            ReaderError: The last provider error when every provider failed
        """
        info = read_image_info(image_bytes)
        if self.primary is None and self.fallback is None:
            raise ConfigMissingError(
                "No OCR provider is configured", code="ocr_config_missing"
            )

        last_error: ReaderError | None = None

        if self.primary is not None:
            try:
                stored = await self.primary.detect(image_bytes)
                blocks = self._finalize(
                    [self._reorient(b, info) for b in stored], info
                )
                if blocks:
                    return blocks
                logger.info("primary_ocr_empty", falling_back=self.fallback is not None)
            except ReaderError as e:
                last_error = e
                logger.warning("primary_ocr_failed", error=str(e), code=e.code)

        if self.fallback is not None:
            try:
                return self._finalize(await self.fallback.detect(image_bytes, info), info)
            except ReaderError as e:
                last_error = e
                logger.warning("fallback_ocr_failed", error=str(e), code=e.code)

        if last_error is not None:
            raise last_error
        return []

    @staticmethod
    def _reorient(block: DetectedBlock, info: ImageInfo) -> DetectedBlock:
        rect = to_displayed(
            Rect(block.x, block.y, block.width, block.height),
            info.orientation,
            info.width,
            info.height,
        )
        return block.model_copy(
            update={"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height}
        )

    @staticmethod
    def _finalize(blocks: list[DetectedBlock], info: ImageInfo) -> list[DetectedBlock]:
        bound_w, bound_h = info.displayed_size
        result = []
        for block in blocks:
            rect = clip_and_round(
                Rect(block.x, block.y, block.width, block.height), bound_w, bound_h
            )
            if rect.area <= 0:
                continue
            result.append(
                block.model_copy(
                    update={
                        "x": rect.x,
                        "y": rect.y,
                        "width": rect.width,
                        "height": rect.height,
                    }
                )
            )
        return result
