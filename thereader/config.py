"""Configuration management for TheReader using Pydantic Settings."""

import json
from pathlib import Path
from typing import Annotated

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Vision / OCR providers
    google_vision_api_key: SecretStr | None = Field(
        default=None,
        description="Google Cloud Vision API key for document text detection",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key for cover analysis and fallback text detection",
    )
    vision_model: str = Field(
        default="gpt-4o",
        description="OpenAI vision model for cover analysis and fallback OCR",
    )
    ocr_timeout_seconds: float = Field(
        default=30.0,
        description="Per-call timeout for OCR provider requests",
    )

    # Text-to-speech
    elevenlabs_model_id: str = Field(
        default="eleven_multilingual_v2",
        description="ElevenLabs model used for synthesis with timestamps",
    )
    tts_timeout_seconds: float = Field(
        default=60.0,
        description="Per-call timeout for speech synthesis requests",
    )

    # Retry policy for transient provider/storage failures
    retry_max_attempts: int = Field(
        default=3,
        description="Maximum retries after the first attempt for transient failures",
    )
    retry_initial_delay: float = Field(
        default=1.0,
        description="Initial backoff delay in seconds (doubled after each retry)",
    )

    # Database settings
    database_url: str = Field(
        default="postgresql+asyncpg://postgres@localhost/thereader",
        description="Database URL with async driver (asyncpg or aiosqlite)",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL queries to console",
    )

    # Artifact storage settings
    storage_backend: str = Field(
        default="local",
        description="Artifact store backend: 'local' or 's3'",
    )
    storage_dir: Path = Field(
        default=Path("storage"),
        description="Directory for artifacts when STORAGE_BACKEND=local",
    )
    s3_bucket: str | None = Field(
        default=None,
        description="Bucket name when STORAGE_BACKEND=s3",
    )
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint (e.g. Cloudflare R2)",
    )
    s3_region: str = Field(default="auto", description="S3 region name")
    s3_access_key_id: SecretStr | None = Field(default=None)
    s3_secret_access_key: SecretStr | None = Field(default=None)

    # Capture session settings
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Externally reachable base URL used in phone pairing links",
    )
    session_ttl_hours: int = Field(
        default=24,
        description="Lifetime of a capture session before it expires",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted page image size",
    )

    # Authentication settings
    jwt_secret: SecretStr = Field(
        default=SecretStr("change-me-in-production"),
        description="Secret used to sign identity tokens",
    )
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(
        default=60 * 24 * 7,
        description="Identity token lifetime in minutes",
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    environment: str = Field(
        default="development",
        description="Environment (development or production)",
    )

    # CORS settings
    cors_allowed_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:5173"],
        description="Allowed CORS origins for API requests",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from a JSON array, a comma-separated string or a list."""
        if isinstance(v, str):
            if v.lstrip().startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate storage backend is a known implementation."""
        allowed = {"local", "s3"}
        value = v.lower()
        if value not in allowed:
            raise ValueError(
                f"Invalid storage_backend: {v}. Allowed values: {', '.join(sorted(allowed))}"
            )
        return value

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL so paths can be appended directly."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_s3_settings(self) -> "Settings":
        """Validate bucket is set when S3 storage is selected."""
        if self.storage_backend == "s3" and not self.s3_bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        return self

    @model_validator(mode="after")
    def create_storage_directory(self) -> "Settings":
        """Create local storage directory if it doesn't exist."""
        if self.storage_backend != "local":
            return self
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise ValueError(
                f"Cannot create storage directory at {self.storage_dir}: {e}"
            ) from e
        return self

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Refuse the placeholder signing secret in production."""
        if (
            self.environment == "production"
            and self.jwt_secret.get_secret_value() == "change-me-in-production"
        ):
            raise ValueError("JWT_SECRET must be set in production environment.")
        return self


# Global settings instance
settings = Settings()
