"""Capture session endpoints used by the phone and by polling desktops.

These routes are authorized by the session token in the path, not by a
bearer token.
"""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status

from thereader.api.dependencies import get_capture_coordinator, get_ingestion_pipeline
from thereader.api.schemas.sessions import (
    CompleteResponse,
    PageUploadResponse,
    SessionStatusResponse,
)
from thereader.config import settings
from thereader.core.capture.coordinator import CaptureCoordinator
from thereader.core.ingestion.pipeline import IngestionPipeline
from thereader.utils.exceptions import ReaderError

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/sessions", tags=["sessions"])


async def run_ingestion(pipeline: IngestionPipeline, token: str) -> None:
    """Background entry point; failures are already persisted on the book and session."""
    try:
        await pipeline.run(token)
    except ReaderError as e:
        logger.warning("background_ingestion_stopped", error=str(e), code=e.code)
    except Exception as e:
        logger.exception("background_ingestion_crashed", token=token, error=str(e))


@router.post(
    "/{token}/pages",
    response_model=PageUploadResponse,
    summary="Upload a page photo",
    responses={
        400: {"description": "Not an image or too large"},
        404: {"description": "Unknown session"},
        409: {"description": "Session expired or closed"},
    },
)
async def upload_page(
    token: str,
    image: UploadFile = File(..., description="Page photo"),  # noqa: B008
    coordinator: CaptureCoordinator = Depends(get_capture_coordinator),  # noqa: B008
) -> PageUploadResponse:
    data = await image.read(settings.max_upload_bytes + 1)
    upload = await coordinator.add_page(token, data, image.content_type, image.filename)
    return PageUploadResponse(page_number=upload.page_number, image_path=upload.image_uri)


@router.post(
    "/{token}/complete",
    response_model=CompleteResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Finish capture and start processing",
)
async def complete_session(
    token: str,
    background_tasks: BackgroundTasks,
    coordinator: CaptureCoordinator = Depends(get_capture_coordinator),  # noqa: B008
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),  # noqa: B008
) -> CompleteResponse:
    scheduled = await coordinator.complete(token)
    if scheduled:
        background_tasks.add_task(run_ingestion, pipeline, token)
    current = await coordinator.status(token)
    return CompleteResponse(session_id=token, book_id=current.book_id, status=current.status)


@router.get(
    "/{token}/status",
    response_model=SessionStatusResponse,
    summary="Poll session status and progress",
)
async def session_status(
    token: str,
    coordinator: CaptureCoordinator = Depends(get_capture_coordinator),  # noqa: B008
) -> SessionStatusResponse:
    return SessionStatusResponse.from_status(await coordinator.status(token))
