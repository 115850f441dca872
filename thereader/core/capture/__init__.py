"""Capture sessions pairing a desktop with a phone camera."""

from thereader.core.capture.coordinator import (
    CaptureCoordinator,
    CaptureHandle,
    CaptureStatus,
    PageUpload,
    SessionProgress,
)

__all__ = [
    "CaptureCoordinator",
    "CaptureHandle",
    "CaptureStatus",
    "PageUpload",
    "SessionProgress",
]
