from __future__ import annotations

"""
Small deterministic helpers shared across the fix loop:
run/asset IDs, UTC clock, image fingerprints, list coercion.
"""

from listing_guardian.core import clock, hashing, ids, utils

__all__ = [
    "clock",
    "hashing",
    "ids",
    "utils",
]
