from __future__ import annotations

"""
Input schemas shared with the (external) analysis step:
- assets
- compliance results / violations
"""

from listing_guardian.schemas import asset_schema, compliance_schema

__all__ = [
    "asset_schema",
    "compliance_schema",
]
