"""QR image rendering; failures never block code issuance."""

import base64
from io import BytesIO
from typing import Optional

import qrcode
from PIL import Image

from .logging_config import log

QR_IMAGE_SIZE = 300


def build_qr_image(qr_text: str, size: int = QR_IMAGE_SIZE) -> Image.Image:
    """Build a square RGB QR image for `qr_text`."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(qr_text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return img.resize((int(size), int(size)), Image.NEAREST)


def render_qr(qr_text: Optional[str], size: int = QR_IMAGE_SIZE) -> Optional[str]:
    """Return a `data:image/png;base64,...` URL, or None when rendering is unavailable."""
    text = str(qr_text or "")
    if not text:
        return None
    try:
        buf = BytesIO()
        build_qr_image(text, size=size).save(buf, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
    except Exception:
        log.exception("QR rendering failed")
        return None
