from __future__ import annotations

"""
Application plumbing for the fix loop:
- env-driven settings
- JSON logging
- the error hierarchy (and the provider error taxonomy)
"""

from listing_guardian.app import errors, logging, settings

__all__ = [
    "errors",
    "logging",
    "settings",
]
