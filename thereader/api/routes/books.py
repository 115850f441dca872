"""Book API endpoints: capture start, listing, details, export and deletion."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Response, status

from thereader.api.dependencies import get_capture_coordinator, get_reading_service
from thereader.api.schemas.books import (
    BookDetail,
    BookListItem,
    CleanupResponse,
    CreateBookResponse,
    FullTextResponse,
    PageItem,
)
from thereader.api.security import get_current_user
from thereader.core.capture.coordinator import CaptureCoordinator
from thereader.core.reading.service import ReadingService
from thereader.db.models.user import User

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/books", tags=["books"])


@router.post(
    "",
    response_model=CreateBookResponse,
    summary="Start a new book",
    description="Create an empty book and a capture session to pair a phone with",
    status_code=status.HTTP_200_OK,
)
async def create_book(
    user: User = Depends(get_current_user),  # noqa: B008
    coordinator: CaptureCoordinator = Depends(get_capture_coordinator),  # noqa: B008
) -> CreateBookResponse:
    logger.info("create_book_request", user_id=str(user.id))
    handle = await coordinator.create_session(user.id)
    return CreateBookResponse(
        book_id=handle.book_id,
        session_id=handle.token,
        qr_code=handle.qr_data_url,
        mobile_url=handle.mobile_url,
    )


@router.get(
    "",
    response_model=list[BookListItem],
    summary="List books",
    description="List the caller's books, newest first, optionally by category",
)
async def list_books(
    filter: str | None = Query(None, description="Primary category, or 'all'"),
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> list[BookListItem]:
    logger.info("list_books_request", user_id=str(user.id), filter=filter)
    summaries = await service.list_books(user.id, filter)
    return [BookListItem.from_summary(s) for s in summaries]


@router.delete(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete empty books",
    description="Delete the caller's books without pages or an active capture session",
)
async def cleanup_books(
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> CleanupResponse:
    deleted = await service.cleanup_empty_books(user.id)
    return CleanupResponse(deleted=deleted)


@router.get(
    "/{book_id}",
    response_model=BookDetail,
    summary="Get book details",
    description="Book with ordered pages and recent ingestion warnings and errors",
    responses={403: {"description": "Not your book"}, 404: {"description": "Book not found"}},
)
async def get_book(
    book_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> BookDetail:
    logger.info("get_book_request", book_id=str(book_id))
    details = await service.get_book(user.id, book_id)
    return BookDetail.from_details(details)


@router.get("/{book_id}/pages", response_model=list[PageItem], summary="List pages")
async def get_pages(
    book_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> list[PageItem]:
    pages = await service.get_pages(user.id, book_id)
    return [PageItem.from_page(p) for p in pages]


@router.get(
    "/{book_id}/fulltext",
    response_model=FullTextResponse,
    summary="Export full text",
    description="All block text in reading order with page separators",
)
async def get_full_text(
    book_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> FullTextResponse:
    book, page_count, text = await service.get_full_text(user.id, book_id)
    return FullTextResponse(
        book_id=book.id,
        title=book.title,
        author=book.author,
        page_count=page_count,
        full_text=text,
        text_length=len(text),
    )


@router.delete(
    "/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a book",
)
async def delete_book(
    book_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> Response:
    logger.info("delete_book_request", book_id=str(book_id))
    await service.delete_book(user.id, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
