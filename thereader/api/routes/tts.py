"""Direct text-to-speech endpoint for titles and short text."""

from fastapi import APIRouter, Depends

from thereader.api.dependencies import get_reading_service
from thereader.api.schemas.blocks import DirectSpeechRequest, SpeechResponse
from thereader.api.security import get_current_user, get_tts_credentials
from thereader.core.reading.service import ReadingService
from thereader.core.speech.synthesizer import TTSCredentials
from thereader.db.models.user import User

router = APIRouter(prefix="/tts", tags=["speech"])


@router.post("/direct", response_model=SpeechResponse, summary="Speak arbitrary text")
async def speak_text(
    body: DirectSpeechRequest,
    user: User = Depends(get_current_user),  # noqa: B008
    credentials: TTSCredentials = Depends(get_tts_credentials),  # noqa: B008
    service: ReadingService = Depends(get_reading_service),  # noqa: B008
) -> SpeechResponse:
    payload = await service.speak_text(user.id, body.text, credentials)
    return SpeechResponse.from_payload(payload)
