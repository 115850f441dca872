"""Rectangle transforms between the stored and the displayed image frame.

OCR providers report boxes against the pixel grid as stored in the file.
Viewers draw the image after applying its EXIF orientation, so boxes are
persisted in that displayed frame. ``W`` and ``H`` are always the stored size.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height


def to_displayed(rect: Rect, orientation: int, width: float, height: float) -> Rect:
    """Map a rectangle from the stored frame into the displayed frame."""
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    W, H = width, height
    if orientation == 2:
        return Rect(W - x - w, y, w, h)
    if orientation == 3:
        return Rect(W - x - w, H - y - h, w, h)
    if orientation == 4:
        return Rect(x, H - y - h, w, h)
    if orientation == 5:
        return Rect(y, x, h, w)
    if orientation == 6:
        return Rect(H - y - h, x, h, w)
    if orientation == 7:
        return Rect(H - y - h, W - x - w, h, w)
    if orientation == 8:
        return Rect(y, W - x - w, h, w)
    return rect


def to_stored(rect: Rect, orientation: int, width: float, height: float) -> Rect:
    """Inverse of ``to_displayed``; ``width``/``height`` are still the stored size."""
    X, Y, dw, dh = rect.x, rect.y, rect.width, rect.height
    W, H = width, height
    if orientation in (2, 3, 4, 5):
        # reflections and the transpose are their own inverse
        return to_displayed(rect, orientation, W, H)
    if orientation == 6:
        return Rect(Y, H - X - dw, dh, dw)
    if orientation == 7:
        return Rect(W - Y - dh, H - X - dw, dh, dw)
    if orientation == 8:
        return Rect(W - Y - dh, X, dh, dw)
    return rect


def clip_and_round(rect: Rect, bound_width: int, bound_height: int) -> Rect:
    """Clip to ``[0, bound)`` on both axes and snap edges to whole pixels."""
    x0 = round(min(max(rect.x, 0), bound_width))
    y0 = round(min(max(rect.y, 0), bound_height))
    x1 = round(min(max(rect.x + rect.width, 0), bound_width))
    y1 = round(min(max(rect.y + rect.height, 0), bound_height))
    return Rect(x0, y0, max(0, x1 - x0), max(0, y1 - y0))
