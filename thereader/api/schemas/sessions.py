"""Pydantic schemas for capture session endpoints."""

from uuid import UUID

from pydantic import BaseModel

from thereader.api.schemas.books import PageItem
from thereader.api.schemas.common import CamelModel
from thereader.core.capture.coordinator import CaptureStatus


class PageUploadResponse(CamelModel):
    page_number: int
    image_path: str


class CompleteResponse(CamelModel):
    session_id: str
    book_id: UUID
    status: str


class ProgressItem(BaseModel):
    """Pipeline progress; field names are kept as stored."""

    step_label: str | None
    steps_done: int
    steps_total: int
    detail: str | None


class SessionStatusResponse(CamelModel):
    """Polling view of a capture session."""

    session_id: str
    book_id: UUID
    status: str
    page_count: int
    pages: list[PageItem]
    progress: ProgressItem

    @classmethod
    def from_status(cls, status: CaptureStatus) -> "SessionStatusResponse":
        return cls(
            session_id=status.token,
            book_id=status.book_id,
            status=status.status,
            page_count=len(status.pages),
            pages=[PageItem.from_page(p) for p in status.pages],
            progress=ProgressItem(
                step_label=status.progress.step_label,
                steps_done=status.progress.steps_done,
                steps_total=status.progress.steps_total,
                detail=status.progress.detail,
            ),
        )
