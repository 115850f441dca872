"""Centralized OpenAI client construction and response helpers."""

import base64

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from thereader.config import settings
from thereader.utils.exceptions import (
    ConfigMissingError,
    ProviderError,
    RateLimitedError,
    ReaderError,
    TransientError,
)


def get_openai_client(
    api_key: str | None = None, timeout: float | None = None
) -> AsyncOpenAI:
    """
    Build an OpenAI async client for one unit of work.

    Args:
        api_key: Explicit key; defaults to settings.openai_api_key
        timeout: Per-request timeout in seconds; defaults to settings.ocr_timeout_seconds

    Returns:
        Configured AsyncOpenAI client

    Raises:
        ConfigMissingError: If no API key is available
    """
    if api_key is None and settings.openai_api_key is not None:
        api_key = settings.openai_api_key.get_secret_value()
    if not api_key:
        raise ConfigMissingError("OPENAI_API_KEY is not configured", code="openai_config_missing")
    return AsyncOpenAI(
        api_key=api_key,
        timeout=timeout or settings.ocr_timeout_seconds,
        max_retries=0,
    )


def image_data_url(image_bytes: bytes, media_type: str = "image/jpeg") -> str:
    """Encode image bytes as a data URL accepted by chat vision inputs."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def classify_openai_error(error: Exception) -> ReaderError:
    """
    Map an OpenAI SDK exception onto the application error kinds.

    Rate limits and server-side/network failures are transient; other API
    status errors are permanent provider errors.
    """
    if isinstance(error, RateLimitError):
        retry_after = _retry_after(error.response)
        return RateLimitedError(f"OpenAI rate limit: {error}", retry_after=retry_after)
    if isinstance(error, (APITimeoutError, APIConnectionError)):
        return TransientError(f"OpenAI unavailable: {error}")
    if isinstance(error, APIStatusError):
        if error.status_code >= 500:
            return TransientError(f"OpenAI server error {error.status_code}: {error}")
        return ProviderError(f"OpenAI rejected request ({error.status_code}): {error}")
    return ProviderError(f"OpenAI call failed: {error}")


def _retry_after(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None
