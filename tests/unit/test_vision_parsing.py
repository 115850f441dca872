"""Unit tests for OCR response parsing and the Google Vision client."""

import json

import httpx
import pytest

from thereader.core.vision.document_ocr import GoogleVisionOCR, parse_document_annotation
from thereader.core.vision.fallback_ocr import parse_block_response
from thereader.core.vision.models import DetectedBlock
from thereader.utils.exceptions import (
    ConfigMissingError,
    ProviderError,
    RateLimitedError,
    TransientError,
)


def word(text: str, x0: int, y0: int, x1: int, y1: int, confidence: float | None = None) -> dict:
    entry = {
        "symbols": [{"text": c} for c in text],
        "boundingBox": {
            "vertices": [
                {"x": x0, "y": y0},
                {"x": x1, "y": y0},
                {"x": x1, "y": y1},
                {"x": x0, "y": y1},
            ]
        },
    }
    if confidence is not None:
        entry["confidence"] = confidence
    return entry


SAMPLE_RESPONSE = {
    "fullTextAnnotation": {
        "pages": [
            {
                "blocks": [
                    {
                        "paragraphs": [
                            {"words": [word("Chapter", 10, 10, 80, 30, 0.98), word("One", 90, 10, 120, 30, 0.96)]},
                        ]
                    },
                    {
                        "paragraphs": [
                            {"words": [word("It", 10, 50, 20, 70), word("rained.", 25, 50, 90, 70)]},
                            {"words": [word("Again.", 12, 80, 70, 100)]},
                        ]
                    },
                    {"paragraphs": [{"words": [word("42", 300, 500, 320, 520)]}]},
                    {"paragraphs": [{"words": []}]},
                ]
            }
        ]
    }
}


class TestParseDocumentAnnotation:
    """Test conversion of DOCUMENT_TEXT_DETECTION responses."""

    def test_blocks_text_and_geometry(self):
        """Test words, paragraphs and block rectangles are assembled."""
        blocks = parse_document_annotation(SAMPLE_RESPONSE)

        assert [b.text for b in blocks] == ["Chapter One", "It rained. Again."]
        first, second = blocks
        assert (first.x, first.y, first.width, first.height) == (10, 10, 110, 20)
        assert (second.x, second.y, second.width, second.height) == (10, 50, 80, 50)

    def test_confidence_is_word_average_or_default(self):
        """Test confidence averages word scores and defaults to 0.9."""
        first, second = parse_document_annotation(SAMPLE_RESPONSE)

        assert first.confidence == pytest.approx(0.97)
        assert second.confidence == 0.9

    def test_zero_word_confidence_counts(self):
        """Test a word scored 0.0 pulls the average down instead of being skipped."""
        response = {
            "fullTextAnnotation": {
                "pages": [
                    {
                        "blocks": [
                            {
                                "paragraphs": [
                                    {"words": [word("Smudged", 0, 0, 60, 20, 0.0), word("word", 70, 0, 100, 20, 0.8)]}
                                ]
                            }
                        ]
                    }
                ]
            }
        }

        (block,) = parse_document_annotation(response)

        assert block.confidence == pytest.approx(0.4)

    def test_short_blocks_dropped(self):
        """Test blocks under three characters are skipped."""
        texts = [b.text for b in parse_document_annotation(SAMPLE_RESPONSE)]
        assert "42" not in texts

    def test_missing_vertex_coordinates_count_as_zero(self):
        """Test vertices without x or y are treated as 0."""
        response = {
            "fullTextAnnotation": {
                "pages": [
                    {
                        "blocks": [
                            {
                                "paragraphs": [
                                    {
                                        "words": [
                                            {
                                                "symbols": [{"text": c} for c in "Title"],
                                                "boundingBox": {
                                                    "vertices": [{"y": 5}, {"x": 50, "y": 5}, {"x": 50, "y": 25}, {"y": 25}]
                                                },
                                            }
                                        ]
                                    }
                                ]
                            }
                        ]
                    }
                ]
            }
        }
        (block,) = parse_document_annotation(response)
        assert (block.x, block.y, block.width, block.height) == (0, 5, 50, 20)

    def test_empty_response(self):
        """Test a response without annotation yields no blocks."""
        assert parse_document_annotation({}) == []


class TestParseBlockResponse:
    """Test tolerant parsing of vision model replies."""

    def test_bare_array(self):
        """Test a plain JSON array is parsed."""
        content = json.dumps([{"text": "Once upon a time", "x": 1, "y": 2, "width": 3, "height": 4}])

        (block,) = parse_block_response(content)

        assert block == DetectedBlock(text="Once upon a time", x=1, y=2, width=3, height=4, confidence=0.9)

    def test_wrapped_camel_case_object(self):
        """Test an object with camelCase fields under textBlocks is parsed."""
        content = json.dumps(
            {"textBlocks": [{"ocrText": " Hello ", "x": 5, "y": 6, "width": 7, "height": 8, "confidenceScore": 1.4}]}
        )

        (block,) = parse_block_response(content)

        assert block.text == "Hello"
        assert block.confidence == 1.0

    def test_fenced_code_block(self):
        """Test JSON inside a markdown fence is found."""
        content = 'Here you go:\n```json\n[{"text": "Fenced", "x": 0, "y": 0, "width": 1, "height": 1}]\n```'

        assert [b.text for b in parse_block_response(content)] == ["Fenced"]

    def test_invalid_items_skipped(self):
        """Test items missing geometry or text are dropped."""
        content = json.dumps(
            [
                {"text": "kept", "x": 0, "y": 0, "width": 1, "height": 1},
                {"text": "no geometry"},
                {"text": "   ", "x": 0, "y": 0, "width": 1, "height": 1},
                "not an object",
            ]
        )

        assert [b.text for b in parse_block_response(content)] == ["kept"]

    def test_unparseable_reply(self):
        """Test prose without JSON yields no blocks."""
        assert parse_block_response("I cannot read this image.") == []
        assert parse_block_response(None) == []


class TestGoogleVisionOCR:
    """Test the REST client against a mocked transport."""

    def make_client(self, handler) -> GoogleVisionOCR:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GoogleVisionOCR(api_key="test-key", timeout=5, http_client=http_client)

    def test_missing_key_raises_config_missing(self):
        """Test construction fails without an API key."""
        with pytest.raises(ConfigMissingError):
            GoogleVisionOCR(api_key="")

    @pytest.mark.asyncio
    async def test_detect_success(self):
        """Test a successful call is parsed into blocks."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"responses": [SAMPLE_RESPONSE]})

        blocks = await self.make_client(handler).detect(b"image-bytes")

        assert len(blocks) == 2
        assert seen["key"] == "test-key"
        assert seen["body"]["requests"][0]["features"] == [{"type": "DOCUMENT_TEXT_DETECTION"}]

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        """Test HTTP 429 raises RateLimitedError with the retry hint."""
        client = self.make_client(lambda r: httpx.Response(429, headers={"retry-after": "7"}))

        with pytest.raises(RateLimitedError) as exc_info:
            await client.detect(b"image-bytes")

        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        """Test 5xx raises TransientError."""
        client = self.make_client(lambda r: httpx.Response(503))

        with pytest.raises(TransientError):
            await client.detect(b"image-bytes")

    @pytest.mark.asyncio
    async def test_client_error_is_permanent(self):
        """Test other 4xx raise ProviderError."""
        client = self.make_client(lambda r: httpx.Response(403, text="API key invalid"))

        with pytest.raises(ProviderError):
            await client.detect(b"image-bytes")

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        """Test a timeout raises TransientError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransientError):
            await self.make_client(handler).detect(b"image-bytes")

    @pytest.mark.asyncio
    async def test_error_entry_is_permanent(self):
        """Test an error inside the response entry raises ProviderError."""
        client = self.make_client(
            lambda r: httpx.Response(200, json={"responses": [{"error": {"message": "Bad image data"}}]})
        )

        with pytest.raises(ProviderError):
            await client.detect(b"image-bytes")
