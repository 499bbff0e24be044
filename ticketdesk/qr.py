import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M


def qr_png(data: str, box_size: int = 8, border: int = 4) -> bytes:
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def qr_data_url(data: str) -> str:
    """PNG QR code of `data`, inlined as a data: URL for <img src=...>."""
    encoded = base64.b64encode(qr_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
