from __future__ import annotations

import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from app.core.config import settings


def render_qr_data_url(data: str) -> str:
    """Render ``data`` as a PNG QR code and return it as a data URL."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_H,
        box_size=settings.QR_BOX_SIZE,
        border=settings.QR_BORDER,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color=settings.QR_FILL_COLOR, back_color=settings.QR_BACK_COLOR)

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    img_str = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"
