"""Custom exceptions for TheReader application.

Every error carries the HTTP status it maps to and a stable machine-readable
code, so the API layer can translate any ``ReaderError`` with one handler.
"""


class ReaderError(Exception):
    """Base exception for all TheReader errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(ReaderError):
    """Requested entity or blob does not exist."""

    status_code = 404
    code = "not_found"


class ArtifactNotFoundError(NotFoundError):
    """Artifact key is not present in the store."""

    code = "artifact_not_found"


class PermissionDeniedError(ReaderError):
    """Caller is authenticated but does not own the resource."""

    status_code = 403
    code = "permission_denied"


class AuthenticationError(ReaderError):
    """Caller identity is missing or invalid."""

    status_code = 401
    code = "not_authenticated"


class ConfigMissingError(ReaderError):
    """Required provider credentials are not configured for the caller."""

    status_code = 400
    code = "config_missing"


class InvalidInputError(ReaderError):
    """Input violates a constraint."""

    status_code = 400
    code = "invalid_input"


class BadImageError(InvalidInputError):
    """Uploaded file is not an acceptable image."""

    code = "bad_image"


class ConflictError(ReaderError):
    """Requested state transition is not allowed."""

    status_code = 409
    code = "conflict"


class SessionInvalidError(ConflictError):
    """Capture session is expired or no longer accepts this operation."""

    code = "session_invalid"


class SessionNotFoundError(SessionInvalidError):
    """Capture session token is unknown."""

    status_code = 404
    code = "session_not_found"


class TransientError(ReaderError):
    """Temporary backend failure; safe to retry."""

    status_code = 503
    code = "service_unavailable"


class RateLimitedError(TransientError):
    """Provider quota hit (429)."""

    status_code = 429
    code = "rate_limited"

    def __init__(
        self, message: str = "", *, retry_after: float | None = None, code: str | None = None
    ) -> None:
        super().__init__(message, code=code)
        self.retry_after = retry_after


class ProviderError(ReaderError):
    """External provider rejected the request permanently."""

    status_code = 502
    code = "provider_error"


class ArtifactStoreError(ReaderError):
    """Artifact store failed permanently."""

    code = "artifact_store_error"


class FatalError(ReaderError):
    """Unrecoverable processing error."""


class IngestionCancelledError(ReaderError):
    """Book disappeared while its ingestion was running."""

    status_code = 410
    code = "ingestion_cancelled"
