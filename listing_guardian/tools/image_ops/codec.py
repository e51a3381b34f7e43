from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Tuple, Union

ALLOWED_MEDIA_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})
DEFAULT_MEDIA_TYPE = "image/jpeg"

# Leading characters of the base64 encoding of each format's magic bytes
_BASE64_SIGNATURES: Tuple[Tuple[str, str], ...] = (
    ("/9j/", "image/jpeg"),      # FF D8 FF
    ("iVBOR", "image/png"),      # 89 50 4E 47
    ("R0lGOD", "image/gif"),     # GIF8
    ("UklGR", "image/webp"),     # RIFF
)

_DATA_URI_RE = re.compile(r"^data:([^;,]+)(?:;[^,]*)?;base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class EncodedImage:
    """An image as sent to the providers: media type + base64 body."""
    media_type: str
    data: str

    def to_data_uri(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


def sniff_media_type(data: str) -> str:
    """Guess the media type from the start of a base64 body. Defaults to JPEG."""
    head = (data or "").lstrip()
    for prefix, media_type in _BASE64_SIGNATURES:
        if head.startswith(prefix):
            return media_type
    return DEFAULT_MEDIA_TYPE


def normalize_media_type(declared: str, data: str) -> str:
    mt = (declared or "").strip().lower()
    if mt == "image/jpg":
        return "image/jpeg"
    if mt not in ALLOWED_MEDIA_TYPES:
        return sniff_media_type(data)
    return mt


def extract(payload: Union[str, bytes]) -> EncodedImage:
    """
    Normalise an opaque image payload into (media type, base64 body).

    - `data:<type>;base64,<body>`: declared type, normalised (jpg -> jpeg,
      unknown types re-sniffed from the body)
    - any other `data:` URI: body after the first comma, type sniffed
    - bare base64 string: type sniffed from the leading bytes
    - raw bytes: base64-encoded, then sniffed
    """
    if isinstance(payload, (bytes, bytearray)):
        body = base64.b64encode(bytes(payload)).decode("ascii")
        return EncodedImage(media_type=sniff_media_type(body), data=body)

    text = (payload or "").strip()
    if text.startswith("data:"):
        m = _DATA_URI_RE.match(text)
        if m:
            body = m.group(2).strip()
            return EncodedImage(media_type=normalize_media_type(m.group(1), body), data=body)
        _, sep, rest = text.partition(",")
        if sep:
            # empty or non-base64 header: keep only the body
            body = rest.strip()
            return EncodedImage(media_type=sniff_media_type(body), data=body)

    return EncodedImage(media_type=sniff_media_type(text), data=text)

