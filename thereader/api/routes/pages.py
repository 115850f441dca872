"""Page endpoints: text blocks and on-demand detection."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends

from thereader.api.dependencies import get_reading_service
from thereader.api.schemas.blocks import DetectBlocksResponse, TextBlockItem
from thereader.api.security import get_current_user
from thereader.core.reading.service import ReadingService
from thereader.db.models.user import User

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/pages", tags=["pages"])


@router.get(
    "/{page_id}/blocks",
    response_model=list[TextBlockItem],
    summary="List text blocks",
    description="Blocks of a page in detection order, in displayed-image pixels",
)
async def get_blocks(
    page_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> list[TextBlockItem]:
    blocks = await service.get_blocks(user.id, page_id)
    return [TextBlockItem.from_block(b) for b in blocks]


@router.post(
    "/{page_id}/detect-blocks",
    response_model=DetectBlocksResponse,
    summary="Detect text blocks",
    description="Re-run text detection for the page and replace its blocks",
)
async def detect_blocks(
    page_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> DetectBlocksResponse:
    logger.info("detect_blocks_request", page_id=str(page_id))
    blocks = await service.detect_blocks(user.id, page_id)
    return DetectBlocksResponse(
        blocks=[TextBlockItem.from_block(b) for b in blocks],
        total_blocks=len(blocks),
    )
