"""Text-to-speech adapters."""

from thereader.core.speech.alignment import CharacterTiming
from thereader.core.speech.synthesizer import (
    ElevenLabsSynthesizer,
    SpeechResult,
    TTSCredentials,
)

__all__ = ["CharacterTiming", "ElevenLabsSynthesizer", "SpeechResult", "TTSCredentials"]
