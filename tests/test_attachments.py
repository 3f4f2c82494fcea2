import base64

import pytest

from zokzz.chat.attachments import MAX_IMAGE_BYTES, decode_image
from zokzz.core.errors import CoreError, ErrorKind


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_data_url_sets_mime_type():
    attachment = decode_image("data:image/gif;base64," + b64(b"GIF89a"), "image/png")

    assert attachment.mime_type == "image/gif"
    assert attachment.data == b"GIF89a"
    assert attachment.to_record() == {"data": b64(b"GIF89a"), "mimeType": "image/gif", "size": 6}


def test_bare_base64_uses_fallback_mime_type():
    attachment = decode_image(b64(b"\xff\xd8\xff"), "image/jpeg")
    assert attachment.mime_type == "image/jpeg"
    assert attachment.size == 3


def test_mime_type_casing_is_kept():
    attachment = decode_image("DATA:Image/PNG;BASE64," + b64(b"png"))
    assert attachment.mime_type == "Image/PNG"


def test_whitespace_in_payload_is_ignored():
    encoded = b64(b"x" * 120)
    wrapped = "\n".join(encoded[i:i + 76] for i in range(0, len(encoded), 76))

    assert decode_image(wrapped, "image/png").data == b"x" * 120


@pytest.mark.parametrize(
    "image_data, mime_type",
    [
        (None, "image/png"),
        ("   ", "image/png"),
        (b64(b"abc"), None),
        (b64(b"abc"), "application/pdf"),
        ("data:text/plain;base64," + b64(b"abc"), None),
        ("not base64!!", "image/png"),
        ("data:image/png;base64,", None),
    ],
)
def test_invalid_images(image_data, mime_type):
    with pytest.raises(CoreError) as error:
        decode_image(image_data, mime_type)
    assert error.value.kind is ErrorKind.INVALID_IMAGE


def test_size_limit_is_inclusive():
    assert decode_image(b64(b"\0" * MAX_IMAGE_BYTES), "image/png").size == MAX_IMAGE_BYTES

    with pytest.raises(CoreError) as error:
        decode_image(b64(b"\0" * (MAX_IMAGE_BYTES + 1)), "image/png")
    assert error.value.kind is ErrorKind.IMAGE_TOO_LARGE
