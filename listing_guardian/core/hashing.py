from __future__ import annotations
import hashlib


def image_fingerprint(media_type: str, data_b64: str) -> str:
    """
    Stable audit fingerprint of a generated image.
    Hashes the encoded payload as sent/received, so no decoding is needed.
    """
    h = hashlib.sha256()
    h.update(media_type.encode("ascii"))
    h.update(b";")
    h.update(data_b64.encode("ascii"))
    return h.hexdigest()
