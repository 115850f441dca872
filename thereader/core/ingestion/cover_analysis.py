"""Book metadata suggestions from the first page photo."""

import json
import re
from typing import Any

import structlog
from openai import OpenAIError
from pydantic import BaseModel, Field, ValidationError, model_validator

from thereader.config import settings
from thereader.core.vision.image_info import upright_for_upload
from thereader.utils.exceptions import ConfigMissingError
from thereader.utils.openai_client import (
    classify_openai_error,
    get_openai_client,
    image_data_url,
)

logger = structlog.get_logger(__name__)

DEFAULT_TITLE = "Unknown Book"
DEFAULT_CATEGORY = "General"
JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

COVER_PROMPT = """Look at this book page image carefully and extract comprehensive information. Extract the book title, determine up to 3 relevant categories, and generate 8-12 descriptive keywords with emojis. If you can see a clear title, use it. If unclear, suggest a descriptive title based on content. If an author is visible, include it.

Categories to choose from: Fiction, Non-Fiction, Education, Science, History, Biography, Children, General

For keywords, include:
- Language (🇬🇧 English, 🇸🇪 Swedish, etc.)
- Topic/Subject (📚 Literature, 🔬 Science, etc.)
- Level/Audience (👶 Children, 🎓 Academic, etc.)
- Content type (📖 Book, 📋 Certificate, etc.)

Respond only in strict JSON format:
{
  "title": "Book Title Here",
  "author": "Author Name or null",
  "category": "Primary Category",
  "categories": ["Category1", "Category2", "Category3"],
  "keywords": [
    {"label": "Keyword", "emoji": "🔤", "group": "language|topic|level|content"},
    {"label": "Another", "emoji": "📚", "group": "topic"}
  ]
}"""


class Keyword(BaseModel):
    label: str
    emoji: str = ""
    group: str = "topic"


class CoverAnalysis(BaseModel):
    """Suggested book metadata; every field has a usable default."""

    title: str = DEFAULT_TITLE
    author: str | None = None
    category: str = DEFAULT_CATEGORY
    categories: list[str] = Field(default_factory=list)
    keywords: list[Keyword] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_categories(self) -> "CoverAnalysis":
        if not self.categories:
            self.categories = [self.category]
        return self


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
        return value.strip()
    return None


def _as_list(value: Any) -> list[Any]:
    """A JSON array as-is, a lone value as a one-item list, nothing otherwise."""
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def parse_cover_response(content: str | None) -> CoverAnalysis:
    """
    Parse the model's reply field by field.

    Anything missing or malformed falls back to its default instead of
    discarding the whole suggestion.
    """
    match = JSON_OBJECT_RE.search(content or "")
    if not match:
        logger.warning("cover_analysis_unparseable", snippet=(content or "")[:200])
        return CoverAnalysis()
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("cover_analysis_unparseable", snippet=(content or "")[:200])
        return CoverAnalysis()
    if not isinstance(data, dict):
        return CoverAnalysis()

    category = _clean_str(data.get("category")) or DEFAULT_CATEGORY
    categories = [c for c in (_clean_str(v) for v in _as_list(data.get("categories"))) if c]
    keywords = []
    for item in _as_list(data.get("keywords")):
        if not isinstance(item, dict):
            continue
        try:
            keywords.append(Keyword.model_validate(item))
        except ValidationError:
            continue

    return CoverAnalysis(
        title=_clean_str(data.get("title")) or DEFAULT_TITLE,
        author=_clean_str(data.get("author")),
        category=category,
        categories=categories,
        keywords=keywords,
    )


class CoverAnalyzer:
    """Suggests title, author, categories and keywords for a new book."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or settings.vision_model
        try:
            get_openai_client(api_key)
            self.enabled = True
        except ConfigMissingError:
            self.enabled = False

    async def analyze(self, image_bytes: bytes) -> CoverAnalysis:
        """
        Analyze the first page image.

        Without an OpenAI key the defaults are returned and no call is made.

        Raises:
            RateLimitedError, TransientError, ProviderError: classified API failures
        """
        if not self.enabled:
            logger.info("cover_analysis_skipped", reason="openai_not_configured")
            return CoverAnalysis()

        image_bytes, media_type = upright_for_upload(image_bytes)
        client = get_openai_client(self.api_key)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": COVER_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {"url": image_data_url(image_bytes, media_type)},
                            },
                        ],
                    }
                ],
                max_tokens=500,
            )
        except OpenAIError as e:
            raise classify_openai_error(e) from e

        analysis = parse_cover_response(response.choices[0].message.content)
        logger.info(
            "cover_analysis_complete",
            title=analysis.title,
            category=analysis.category,
            keywords=len(analysis.keywords),
        )
        return analysis
