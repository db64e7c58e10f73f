import base64
import io

import qrcode
import qrcode.image.svg
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

PNG = "image/png"
SVG = "image/svg+xml"
IMAGE_TYPES = (PNG, SVG)


def make_qr_bytes(payload: str, image_type: str = PNG, error_correction: str = "L", margin: int = 2) -> bytes:
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECTION_LEVELS[error_correction.upper()],
        border=margin,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    if image_type == SVG:
        img = qr.make_image(image_factory=qrcode.image.svg.SvgImage)
        return img.to_string()

    img = qr.make_image()
    buf = io.BytesIO()
    img.save(buf)
    return buf.getvalue()


def make_qr_data_uri(payload: str, image_type: str = PNG, error_correction: str = "L", margin: int = 2) -> str:
    raw = make_qr_bytes(payload, image_type=image_type, error_correction=error_correction, margin=margin)
    return f"data:{image_type};base64," + base64.b64encode(raw).decode("ascii")
