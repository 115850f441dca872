"""Text block speech endpoint."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends

from thereader.api.dependencies import get_reading_service
from thereader.api.schemas.blocks import SpeechResponse
from thereader.api.security import get_current_user, get_tts_credentials
from thereader.core.reading.service import ReadingService
from thereader.core.speech.synthesizer import TTSCredentials
from thereader.db.models.user import User

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/blocks", tags=["speech"])


@router.post(
    "/{block_id}/speak",
    response_model=SpeechResponse,
    summary="Speak a text block",
    description="Audio URL and character alignment; synthesized once per distinct text",
    responses={400: {"description": "Missing ElevenLabs settings or empty block"}},
)
async def speak_block(
    block_id: UUID,
    user: User = Depends(get_current_user),  # noqa: B008
    credentials: TTSCredentials = Depends(get_tts_credentials),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> SpeechResponse:
    logger.info("speak_block_request", block_id=str(block_id))
    payload = await service.speak_block(user.id, block_id, credentials)
    return SpeechResponse.from_payload(payload)
