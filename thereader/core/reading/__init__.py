"""Read-side access to books and cached speech."""

from thereader.core.reading.content_id import content_uuid
from thereader.core.reading.service import (
    BookDetails,
    BookSummary,
    ReadingService,
    SpeechPayload,
)

__all__ = ["BookDetails", "BookSummary", "ReadingService", "SpeechPayload", "content_uuid"]
