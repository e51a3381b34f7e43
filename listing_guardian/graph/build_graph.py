from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, TypedDict

from langgraph.graph import StateGraph, START, END

from listing_guardian.agents.state import FixOptions, FixProgressState, VerificationResult
from listing_guardian.graph.routers import (
    route_after_prepare,
    route_after_generate,
    route_after_verify,
)
from listing_guardian.schemas.asset_schema import Asset
from listing_guardian.schemas.compliance_schema import ComplianceResult
from listing_guardian.tools.image_ops.codec import EncodedImage


class FixGraphState(TypedDict, total=False):
    asset: Asset
    compliance: ComplianceResult
    options: FixOptions
    original_image: EncodedImage
    reference_image: Optional[EncodedImage]
    listing_title: Optional[str]
    instruction: str
    feedback: Optional[VerificationResult]
    generated_image: Optional[EncodedImage]
    progress: FixProgressState


Node = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

# Graph steps per attempt (prepare, generate, verify)
STEPS_PER_ATTEMPT = 3


def recursion_limit(max_attempts: int) -> int:
    return STEPS_PER_ATTEMPT * max_attempts + 5


def build_fix_graph(*, prepare_attempt: Node, generate: Node, verify: Node) -> "StateGraph":
    """
    Per-asset fix loop:
    - START -> prepare_attempt (compose instruction, carry prior critique)
    - prepare_attempt -> generate (or END when abandoned)
    - generate -> verify (or END on provider error)
    - verify -> prepare_attempt on retry, else END (passed / failed / error)
    """
    g = StateGraph(FixGraphState)

    g.add_node("prepare_attempt", prepare_attempt)
    g.add_node("generate", generate)
    g.add_node("verify", verify)

    g.add_edge(START, "prepare_attempt")

    g.add_conditional_edges(
        "prepare_attempt",
        route_after_prepare,
        {"generate": "generate", END: END},
    )
    g.add_conditional_edges(
        "generate",
        route_after_generate,
        {"verify": "verify", END: END},
    )
    g.add_conditional_edges(
        "verify",
        route_after_verify,
        {"prepare_attempt": "prepare_attempt", END: END},
    )

    return g