"""Vision provider adapters for page text detection."""

from thereader.core.vision.extractor import BlockExtractor
from thereader.core.vision.models import DetectedBlock

__all__ = ["BlockExtractor", "DetectedBlock"]
