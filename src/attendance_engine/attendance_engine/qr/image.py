from __future__ import annotations

import base64
import io

import qrcode


def render_qr_png(token: str) -> bytes:
    """Render a token as a PNG QR code (error correction M, margin 2)."""
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=10, border=2)
    qr.add_data(token)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_url(token: str) -> str:
    encoded = base64.b64encode(render_qr_png(token)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
