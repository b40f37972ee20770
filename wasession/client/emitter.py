"""Render connection tokens into what the HTTP layer sends back."""

from __future__ import annotations

import base64
import io
import re

import qrcode
from qrcode.exceptions import DataOverflowError
from qrcode.image.pil import PilImage

from wasession.core.errors import RenderError
from wasession.core.events import PresentationMode, Token
from wasession.defaults.config import QR_BORDER, QR_BOX_SIZE

_PAIRING_CODE_RE = re.compile(r"^[A-Z0-9]{4}-?[A-Z0-9]{4}$")


def qr_png_bytes(qr_text: str) -> bytes:
    qr = qrcode.QRCode(box_size=QR_BOX_SIZE, border=QR_BORDER, image_factory=PilImage)
    qr.add_data(qr_text)
    qr.make(fit=True)
    img = qr.make_image()
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def qr_png_data_url(qr_text: str) -> str:
    encoded = base64.b64encode(qr_png_bytes(qr_text)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def format_pairing_code(raw: str) -> str:
    code = re.sub(r"\s+", "", raw).upper()
    if not _PAIRING_CODE_RE.fullmatch(code):
        raise RenderError(f"malformed pairing code: {raw!r}")
    if "-" not in code:
        code = f"{code[:4]}-{code[4:]}"
    return code


def render(token: str, mode: PresentationMode) -> Token:
    """Encode a QR payload or pairing code for ``mode``."""
    if not isinstance(token, str) or not token.strip():
        raise RenderError("empty token from socket")

    if mode is PresentationMode.PAIRING_CODE:
        return Token(mode=mode, content_type="application/json", body=format_pairing_code(token))

    try:
        if mode is PresentationMode.QR_PNG:
            return Token(mode=mode, content_type="image/png", body=qr_png_bytes(token))
        return Token(mode=mode, content_type="application/json", body=qr_png_data_url(token))
    except (DataOverflowError, ValueError) as exc:
        raise RenderError(f"QR payload cannot be encoded: {exc}") from exc
