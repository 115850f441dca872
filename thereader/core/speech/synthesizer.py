"""Speech synthesis with character timestamps through ElevenLabs."""

import base64
from dataclasses import dataclass

import httpx
import structlog
from elevenlabs import VoiceSettings
from elevenlabs.client import AsyncElevenLabs
from elevenlabs.core.api_error import ApiError

from thereader.config import settings
from thereader.core.speech.alignment import Alignment, from_parallel_arrays
from thereader.utils.exceptions import (
    ConfigMissingError,
    ProviderError,
    RateLimitedError,
    ReaderError,
    TransientError,
)

logger = structlog.get_logger(__name__)

STABILITY = 0.5
SIMILARITY_BOOST = 0.75


@dataclass(frozen=True)
class TTSCredentials:
    """Caller-supplied ElevenLabs key and voice."""

    api_key: str | None
    voice_id: str | None = None

    def require(self) -> tuple[str, str]:
        """Return both values or raise when either is missing."""
        if not self.api_key or not self.voice_id:
            raise ConfigMissingError(
                "ElevenLabs API key and Voice ID are required. Please configure them in Settings.",
                code="TTS_CONFIG_REQUIRED",
            )
        return self.api_key, self.voice_id


@dataclass
class SpeechResult:
    """MP3 audio plus optional raw and normalized character alignments."""

    audio: bytes
    alignment: Alignment | None = None
    normalized_alignment: Alignment | None = None


def classify_elevenlabs_error(error: Exception) -> ReaderError:
    """Map an ElevenLabs SDK or transport failure onto the application error kinds."""
    if isinstance(error, ApiError):
        status = error.status_code or 0
        if status == 429:
            retry_after = None
            headers = getattr(error, "headers", None) or {}
            value = headers.get("retry-after") if hasattr(headers, "get") else None
            if value is not None:
                try:
                    retry_after = float(value)
                except ValueError:
                    retry_after = None
            return RateLimitedError("ElevenLabs rate limit", retry_after=retry_after)
        if status >= 500:
            return TransientError(f"ElevenLabs server error {status}")
        return ProviderError(f"ElevenLabs rejected request ({status}): {error.body}")
    if isinstance(error, httpx.TimeoutException | httpx.TransportError):
        return TransientError(f"ElevenLabs unavailable: {error}")
    return ProviderError(f"ElevenLabs call failed: {error}")


class ElevenLabsSynthesizer:
    """Synthesizes one text per call; holds no cache."""

    def __init__(
        self,
        credentials: TTSCredentials,
        model_id: str | None = None,
        timeout: float | None = None,
        client: AsyncElevenLabs | None = None,
    ) -> None:
        """
        Initialize the synthesizer for one caller.

        Raises:
            ConfigMissingError: If the API key or voice id is missing
        """
        api_key, self.voice_id = credentials.require()
        self.model_id = model_id or settings.elevenlabs_model_id
        self.client = client or AsyncElevenLabs(
            api_key=api_key,
            timeout=timeout or settings.tts_timeout_seconds,
        )

    async def synthesize(self, text: str) -> SpeechResult:
        """
        Speak ``text`` and return audio with per-character timings.

        Raises:
            RateLimitedError: On HTTP 429
            TransientError: On 5xx, network errors and timeouts
            ProviderError: On other API errors or when no audio comes back
        """
        try:
            response = await self.client.text_to_speech.convert_with_timestamps(
                voice_id=self.voice_id,
                text=text,
                model_id=self.model_id,
                voice_settings=VoiceSettings(
                    stability=STABILITY,
                    similarity_boost=SIMILARITY_BOOST,
                ),
            )
        except (ApiError, httpx.HTTPError) as e:
            raise classify_elevenlabs_error(e) from e

        if not response.audio_base_64:
            raise ProviderError("No audio data received from ElevenLabs")

        result = SpeechResult(
            audio=base64.b64decode(response.audio_base_64),
            alignment=_convert(response.alignment),
            normalized_alignment=_convert(response.normalized_alignment),
        )
        logger.info(
            "speech_synthesized",
            text_length=len(text),
            audio_bytes=len(result.audio),
            has_alignment=result.alignment is not None,
        )
        return result


def _convert(raw: object | None) -> Alignment | None:
    if raw is None:
        return None
    return from_parallel_arrays(
        getattr(raw, "characters", None),
        getattr(raw, "character_start_times_seconds", None),
        getattr(raw, "character_end_times_seconds", None),
    )
