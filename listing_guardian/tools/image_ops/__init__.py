from __future__ import annotations

from listing_guardian.tools.image_ops import codec

__all__ = [
    "codec",
]
