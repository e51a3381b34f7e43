from __future__ import annotations

"""
Providers (Gemini) and the contracts the fix loop calls them through.
"""

from listing_guardian.llms.providers import base, gemini_client

__all__ = [
    "base",
    "gemini_client",
]
