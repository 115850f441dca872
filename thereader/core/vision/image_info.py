"""Header-only image inspection and EXIF re-orientation with Pillow."""

import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from thereader.utils.exceptions import BadImageError

EXIF_ORIENTATION_TAG = 0x0112
UPLOADABLE_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}


@dataclass(frozen=True)
class ImageInfo:
    """Stored pixel size plus the EXIF orientation (1 when absent)."""

    width: int
    height: int
    orientation: int = 1
    format: str | None = None

    @property
    def swaps_axes(self) -> bool:
        return self.orientation in (5, 6, 7, 8)

    @property
    def displayed_size(self) -> tuple[int, int]:
        """Size after the viewer applies the orientation."""
        if self.swaps_axes:
            return self.height, self.width
        return self.width, self.height


def read_image_info(data: bytes) -> ImageInfo:
    """
    Read dimensions and orientation without decoding pixel data.

    Raises:
        BadImageError: If the bytes are not a recognizable image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            orientation = img.getexif().get(EXIF_ORIENTATION_TAG, 1)
            fmt = img.format
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise BadImageError(f"Unreadable image: {e}") from e

    if not isinstance(orientation, int) or orientation not in range(1, 9):
        orientation = 1
    return ImageInfo(width=width, height=height, orientation=orientation, format=fmt)


def to_displayed_jpeg(data: bytes) -> bytes:
    """Re-encode an image as JPEG with its EXIF orientation applied."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            upright = ImageOps.exif_transpose(img)
            if upright.mode not in ("RGB", "L"):
                upright = upright.convert("RGB")
            out = io.BytesIO()
            upright.save(out, format="JPEG", quality=90)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise BadImageError(f"Unreadable image: {e}") from e
    return out.getvalue()


def upright_for_upload(data: bytes, info: ImageInfo | None = None) -> tuple[bytes, str]:
    """
    Prepare an image for a vision chat model.

    Returns the bytes and media type to send: the original when it is
    upright and in a format the model accepts, else an upright JPEG.
    """
    info = info or read_image_info(data)
    if info.orientation == 1 and info.format in UPLOADABLE_FORMATS:
        return data, f"image/{str(info.format).lower()}"
    return to_displayed_jpeg(data), "image/jpeg"
