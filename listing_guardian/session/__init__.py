from __future__ import annotations

"""
Fix session layer:
- run the per-asset generate/verify/retry loop
- keep the latest progress snapshot per asset
- project snapshots into display steps
"""

from listing_guardian.session import fix_orchestrator, progress

__all__ = [
    "fix_orchestrator",
    "progress",
]
