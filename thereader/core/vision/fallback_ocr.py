"""Fallback text detection with an OpenAI vision model."""

import json
import re
from typing import Any

import structlog
from openai import OpenAIError
from pydantic import ValidationError

from thereader.config import settings
from thereader.core.vision.image_info import ImageInfo, upright_for_upload
from thereader.core.vision.models import DetectedBlock
from thereader.utils.openai_client import (
    classify_openai_error,
    get_openai_client,
    image_data_url,
)

logger = structlog.get_logger(__name__)

FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```")
BLOCK_LIST_KEYS = ("textBlocks", "text_blocks", "blocks")

DETECTION_PROMPT = """Analyze this book page image and identify all text regions. This image is exactly {width}x{height} pixels.

For each text block (paragraph, heading, or distinct text area), provide:
1. The text content
2. Precise bounding box coordinates (x, y, width, height) in pixels from the top-left corner
3. A confidence score

IMPORTANT: Use the exact image dimensions I provided ({width}x{height}) for your coordinate calculations.

Return a JSON array:
[
  {{
    "text": "actual text content",
    "x": pixel_x_coordinate,
    "y": pixel_y_coordinate,
    "width": pixel_width,
    "height": pixel_height,
    "confidence": confidence_score_0_to_1
  }}
]

Focus on grouping text into meaningful blocks (complete sentences/paragraphs) rather than individual words. Be precise with coordinates using the {width}x{height} pixel coordinate system."""


def _load_json(content: str) -> Any:
    candidates = [content.strip()]
    fenced = FENCED_JSON_RE.search(content)
    if fenced:
        candidates.append(fenced.group(1))
    for opener, closer in (("[", "]"), ("{", "}")):
        start, end = content.find(opener), content.rfind(closer)
        if start != -1 and end > start:
            candidates.append(content[start : end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def parse_block_response(content: str | None) -> list[DetectedBlock]:
    """
    Parse a model reply into blocks.

    Accepts a bare JSON array, an object holding the array under
    ``textBlocks``/``text_blocks``/``blocks``, or either inside a fenced
    code block. Items that do not validate are skipped; an unparseable reply
    yields no blocks.
    """
    if not content:
        return []
    data = _load_json(content)
    if isinstance(data, dict):
        data = next((data[k] for k in BLOCK_LIST_KEYS if isinstance(data.get(k), list)), None)
    if not isinstance(data, list):
        logger.warning("fallback_ocr_unparseable", snippet=content[:200])
        return []

    blocks: list[DetectedBlock] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            block = DetectedBlock.model_validate(item)
        except ValidationError as e:
            logger.debug("fallback_ocr_item_skipped", error=str(e))
            continue
        if block.text:
            blocks.append(block)
    return blocks


class OpenAIVisionOCR:
    """Asks a vision chat model for text blocks in the displayed frame."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or settings.vision_model
        # fail fast when no key is available
        get_openai_client(api_key)

    async def detect(self, image_bytes: bytes, info: ImageInfo) -> list[DetectedBlock]:
        """
        Detect text blocks in an image.

        The image is re-oriented before upload so the model sees what a
        reader sees and the returned boxes are already in the displayed frame.

        Raises:
            RateLimitedError, TransientError, ProviderError: classified API failures
        """
        width, height = info.displayed_size
        image_bytes, media_type = upright_for_upload(image_bytes, info)

        client = get_openai_client(self.api_key)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "text",
                                "text": DETECTION_PROMPT.format(width=width, height=height),
                            },
                            {
                                "type": "image_url",
                                "image_url": {"url": image_data_url(image_bytes, media_type)},
                            },
                        ],
                    }
                ],
                max_tokens=1500,
            )
        except OpenAIError as e:
            raise classify_openai_error(e) from e

        blocks = parse_block_response(response.choices[0].message.content)
        logger.info("vision_detection_complete", provider="openai", blocks=len(blocks))
        return blocks
