"""FastAPI application for TheReader API."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from thereader.api.middleware import RequestLoggingMiddleware
from thereader.api.routes import api_router, health, mobile, objects
from thereader.config import settings
from thereader.db.session import close_db
from thereader.utils.exceptions import RateLimitedError, ReaderError
from thereader.utils.logging import configure_logging
from thereader.version import __version__

# Configure logging based on environment
configure_logging(log_level=settings.log_level, environment=settings.environment)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events."""
    logger.info(
        "application_startup",
        version=__version__,
        storage_backend=settings.storage_backend,
    )
    yield
    await close_db()
    logger.info("application_shutdown")


# Initialize FastAPI application
app = FastAPI(
    title="TheReader API",
    description="Photograph books page by page and listen to them with synchronized highlighting",
    version=__version__,
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health.router)  # Health check (no prefix)
app.include_router(objects.router)  # Blob streaming under /objects
app.include_router(mobile.router)  # Phone capture page
app.include_router(api_router)  # JSON endpoints under /api


# Global error handlers
@app.exception_handler(ReaderError)
async def reader_exception_handler(request: Request, exc: ReaderError) -> JSONResponse:
    """Translate application errors into their HTTP status and machine code."""
    request_id = getattr(request.state, "request_id", "unknown")
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_failed",
        error=exc.message,
        code=exc.code,
        status_code=exc.status_code,
        request_id=request_id,
    )
    headers = {}
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        headers["Retry-After"] = str(int(exc.retry_after))
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Handle database errors with appropriate logging and response."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error("database_error", error=str(exc), request_id=request_id)
    return JSONResponse(status_code=500, content={"detail": "Database error occurred"})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request validation errors as 400."""
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "code": "invalid_input"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error("unhandled_exception", error=str(exc), request_id=request_id)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
