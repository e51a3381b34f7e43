from __future__ import annotations

"""
LangGraph fix-loop topology, routers and satisfaction policies.
"""

from listing_guardian.graph import build_graph, policies, routers

__all__ = [
    "build_graph",
    "policies",
    "routers"
]
