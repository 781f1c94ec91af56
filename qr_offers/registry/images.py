from __future__ import annotations

import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M


def build_token_url(*, public_base_url: str, token_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/qr/redirect/{token_id}"


def render_qr_png(data: str, *, box_size: int = 10, border: int = 4) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_qr_data_url(data: str) -> str:
    encoded = base64.b64encode(render_qr_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
