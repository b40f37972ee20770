import base64

import pytest

from wasession.client.emitter import format_pairing_code, qr_png_bytes, render
from wasession.core.errors import RenderError
from wasession.core.events import PresentationMode

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
QR_REF = "2@AbCdEfGh==,Zm9vYmFy=,YmF6cXV4=,c2VjcmV0="


def test_qr_png_bytes_produces_png() -> None:
    assert qr_png_bytes(QR_REF).startswith(PNG_SIGNATURE)


def test_render_png_token() -> None:
    token = render(QR_REF, PresentationMode.QR_PNG)
    assert token.mode is PresentationMode.QR_PNG
    assert token.content_type == "image/png"
    assert token.body.startswith(PNG_SIGNATURE)


def test_render_data_url_wraps_png() -> None:
    token = render(QR_REF, PresentationMode.QR_DATA_URL)
    prefix = "data:image/png;base64,"
    assert token.content_type == "application/json"
    assert token.body.startswith(prefix)
    assert base64.b64decode(token.body[len(prefix):]).startswith(PNG_SIGNATURE)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("ABCD-1234", "ABCD-1234"), ("abcd1234", "ABCD-1234"), (" wx yz 5678 ", "WXYZ-5678")],
)
def test_format_pairing_code(raw, expected) -> None:
    assert format_pairing_code(raw) == expected


def test_render_pairing_code() -> None:
    token = render("k7p2m9qx", PresentationMode.PAIRING_CODE)
    assert token.body == "K7P2-M9QX"
    assert token.content_type == "application/json"


@pytest.mark.parametrize("raw", ["ABC", "ABCD-12345", "AB!D-1234"])
def test_malformed_pairing_code_rejected(raw) -> None:
    with pytest.raises(RenderError):
        render(raw, PresentationMode.PAIRING_CODE)


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_empty_token_rejected(raw) -> None:
    with pytest.raises(RenderError):
        render(raw, PresentationMode.QR_PNG)


def test_oversized_qr_payload_rejected() -> None:
    with pytest.raises(RenderError):
        render("x" * 5000, PresentationMode.QR_DATA_URL)
