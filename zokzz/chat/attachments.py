import re
import base64
import binascii
from dataclasses import dataclass
from typing import Optional

from zokzz.core.errors import CoreError, ErrorKind


MAX_IMAGE_BYTES = 2 * 1024 * 1024
DATA_URL_PATTERN = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL | re.IGNORECASE)
WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ImageAttachment:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    def to_record(self) -> dict:
        return {
            "data": base64.b64encode(self.data).decode("ascii"),
            "mimeType": self.mime_type,
            "size": self.size,
        }


def decode_image(image_data: str, fallback_mime_type: Optional[str] = None) -> ImageAttachment:
    """
    Decode a bare base64 string or a ``data:<mime>;base64,<payload>`` URL.

    The MIME type comes from the data URL when present, else from
    ``fallback_mime_type``, and must be an ``image/*`` type. The decoded
    payload must be non-empty and at most MAX_IMAGE_BYTES.
    """
    if not isinstance(image_data, str) or not image_data.strip():
        raise CoreError(ErrorKind.INVALID_IMAGE, "Image data is required.")

    payload = image_data.strip()
    mime_type = fallback_mime_type

    match = DATA_URL_PATTERN.match(payload)
    if match:
        mime_type, payload = match.group(1), match.group(2)

    mime_type = (mime_type or "").strip()
    if not mime_type.lower().startswith("image/"):
        raise CoreError(ErrorKind.INVALID_IMAGE, "Only image uploads are supported.")

    payload = WHITESPACE.sub("", payload)

    # 4 base64 characters carry 3 bytes; reject before decoding a huge payload
    if (len(payload) * 3) // 4 - payload.count("=") > MAX_IMAGE_BYTES:
        raise CoreError(ErrorKind.IMAGE_TOO_LARGE, "Image must be 2 MB or smaller.")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise CoreError(ErrorKind.INVALID_IMAGE, "Image data is not valid base64.")

    if not data:
        raise CoreError(ErrorKind.INVALID_IMAGE, "Image data is empty.")

    if len(data) > MAX_IMAGE_BYTES:
        raise CoreError(ErrorKind.IMAGE_TOO_LARGE, "Image must be 2 MB or smaller.")

    return ImageAttachment(data=data, mime_type=mime_type)
