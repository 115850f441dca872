"""QR code rendering for phone pairing links."""

import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M


def render_qr_png(data: str) -> bytes:
    """Render ``data`` as a PNG QR code."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=8, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()


def png_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
