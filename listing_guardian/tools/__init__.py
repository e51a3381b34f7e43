from __future__ import annotations

"""
Deterministic tools used by the agents:
- image_ops: payload normalisation for the provider calls (no pixel work)
"""

from listing_guardian.tools import image_ops

__all__ = [
    "image_ops",
]
