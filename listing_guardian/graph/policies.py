# listing_guardian/graph/policies.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from listing_guardian.agents.state import VerificationResult


@dataclass(frozen=True)
class SatisfactionPolicy:
    """
    Decides whether a verified fix is good enough to stop the loop.
    Keep this deterministic + versioned.
    """
    name: str
    version: str
    description: str
    threshold: float = 80.0
    require_product_match: bool = True

    def is_satisfactory(self, result: VerificationResult) -> bool:
        if result.score < self.threshold:
            return False
        if self.require_product_match and not result.product_match:
            return False
        return True

    def with_threshold(self, threshold: float) -> "SatisfactionPolicy":
        return replace(self, threshold=threshold)


SCORE_AND_IDENTITY_V1 = SatisfactionPolicy(
    name="score_and_identity_v1",
    version="1.0",
    description="Score at or above threshold AND the verifier confirms it is the same product.",
)

SCORE_ONLY_V1 = SatisfactionPolicy(
    name="score_only_v1",
    version="1.0",
    description="Score at or above threshold; product identity only influences the score.",
    require_product_match=False,
)


_POLICY_REGISTRY: Dict[str, SatisfactionPolicy] = {
    SCORE_AND_IDENTITY_V1.name: SCORE_AND_IDENTITY_V1,
    SCORE_ONLY_V1.name: SCORE_ONLY_V1,
}


def get_policy(name: str) -> SatisfactionPolicy:
    """
    Fetch a policy by name. Raises KeyError if missing.
    """
    return _POLICY_REGISTRY[name]


def list_policies() -> List[str]:
    return sorted(_POLICY_REGISTRY.keys())


def maybe_get_policy(name: str) -> Optional[SatisfactionPolicy]:
    return _POLICY_REGISTRY.get(name)
