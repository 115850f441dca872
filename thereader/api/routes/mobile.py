"""Phone capture page opened from the pairing QR code."""

from pathlib import Path

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import HTMLResponse

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="", tags=["ui"])

TEMPLATES_DIR = Path(__file__).parent.parent.parent / "templates"
MOBILE_TEMPLATE = TEMPLATES_DIR / "mobile.html"


@router.get(
    "/mobile",
    response_class=HTMLResponse,
    summary="Phone capture page",
    include_in_schema=False,
)
async def mobile_capture(session: str = Query(..., min_length=16)) -> HTMLResponse:
    """
    Serve the camera page for a capture session.

    The page reads the token from its own URL and talks to the session
    endpoints directly.
    """
    if not MOBILE_TEMPLATE.exists():
        logger.error("mobile_template_missing", template_path=str(MOBILE_TEMPLATE))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Mobile template not found",
        )
    return HTMLResponse(content=MOBILE_TEMPLATE.read_text(encoding="utf-8"))
