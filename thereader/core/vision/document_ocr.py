"""Paragraph-level text detection with Google Cloud Vision over REST."""

import base64
import math
from typing import Any

import httpx
import structlog

from thereader.config import settings
from thereader.core.vision.models import DEFAULT_CONFIDENCE, DetectedBlock
from thereader.utils.exceptions import (
    ConfigMissingError,
    ProviderError,
    RateLimitedError,
    TransientError,
)

logger = structlog.get_logger(__name__)

VISION_ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"
MIN_BLOCK_TEXT_LENGTH = 3


def parse_document_annotation(response: dict[str, Any]) -> list[DetectedBlock]:
    """
    Turn one ``images:annotate`` response entry into blocks.

    Words are their symbols concatenated, paragraphs are space-joined words
    and a block is its paragraphs joined by one space. The rectangle spans
    every word vertex of the block (missing coordinates count as 0).
    Blocks shorter than three characters or without geometry are dropped.

    Args:
        response: One element of the API's ``responses`` array

    Returns:
        Blocks in provider order, in the stored image frame
    """
    annotation = response.get("fullTextAnnotation") or {}
    pages = annotation.get("pages") or []
    if not pages:
        return []

    blocks: list[DetectedBlock] = []
    for block in pages[0].get("blocks") or []:
        paragraph_texts: list[str] = []
        min_x = min_y = math.inf
        max_x = max_y = 0.0
        confidences: list[float] = []

        for paragraph in block.get("paragraphs") or []:
            words = paragraph.get("words") or []
            if not words:
                continue
            word_texts = []
            for word in words:
                word_texts.append(
                    "".join(symbol.get("text", "") for symbol in word.get("symbols") or [])
                )
                vertices = (word.get("boundingBox") or {}).get("vertices")
                if vertices:
                    xs = [v.get("x", 0) for v in vertices]
                    ys = [v.get("y", 0) for v in vertices]
                    min_x = min(min_x, *xs)
                    min_y = min(min_y, *ys)
                    max_x = max(max_x, *xs)
                    max_y = max(max_y, *ys)
                if word.get("confidence") is not None:
                    confidences.append(float(word["confidence"]))

            paragraph_text = " ".join(word_texts).strip()
            if paragraph_text:
                paragraph_texts.append(paragraph_text)

        if not paragraph_texts or min_x == math.inf:
            continue
        text = " ".join(paragraph_texts).strip()
        if len(text) < MIN_BLOCK_TEXT_LENGTH:
            continue

        blocks.append(
            DetectedBlock(
                text=text,
                x=min_x,
                y=min_y,
                width=max_x - min_x,
                height=max_y - min_y,
                confidence=(
                    sum(confidences) / len(confidences) if confidences else DEFAULT_CONFIDENCE
                ),
            )
        )
    return blocks


class GoogleVisionOCR:
    """Google Cloud Vision ``DOCUMENT_TEXT_DETECTION`` client."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: Vision API key (defaults to settings.google_vision_api_key)
            timeout: Request timeout in seconds (defaults to settings.ocr_timeout_seconds)
            http_client: Optional shared httpx client, mainly for tests
        """
        if api_key is None and settings.google_vision_api_key is not None:
            api_key = settings.google_vision_api_key.get_secret_value()
        if not api_key:
            raise ConfigMissingError(
                "GOOGLE_VISION_API_KEY is not configured", code="vision_config_missing"
            )
        self.api_key = api_key
        self.timeout = timeout or settings.ocr_timeout_seconds
        self.http_client = http_client

    async def detect(self, image_bytes: bytes) -> list[DetectedBlock]:
        """
        Detect text blocks in an image.

        Returns:
            Blocks in the stored image frame

        Raises:
            RateLimitedError: On HTTP 429
            TransientError: On timeouts, network errors and 5xx
            ProviderError: On other API errors
        """
        body = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                    "features": [{"type": "DOCUMENT_TEXT_DETECTION"}],
                }
            ]
        }
        try:
            if self.http_client is not None:
                response = await self._post(self.http_client, body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, body)
        except httpx.TimeoutException as e:
            raise TransientError(f"Vision API timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientError(f"Vision API unreachable: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError(
                "Vision API rate limit",
                retry_after=_retry_after(response),
            )
        if response.status_code >= 500:
            raise TransientError(f"Vision API error: {response.status_code}")
        if response.status_code >= 400:
            raise ProviderError(f"Vision API error: {response.status_code} {response.text[:200]}")

        payload = response.json()
        entry = (payload.get("responses") or [{}])[0]
        if entry.get("error"):
            raise ProviderError(f"Vision API error: {entry['error'].get('message')}")

        blocks = parse_document_annotation(entry)
        logger.info("vision_detection_complete", provider="google_vision", blocks=len(blocks))
        return blocks

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        return await client.post(
            VISION_ANNOTATE_URL,
            params={"key": self.api_key},
            json=body,
            timeout=self.timeout,
        )


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None
