from __future__ import annotations
from typing import Any, Dict

from langgraph.graph import END

from listing_guardian.agents.state import FixProgressState


def _progress(state: Dict[str, Any]) -> FixProgressState:
    return state["progress"]


def route_after_prepare(state: Dict[str, Any]) -> str:
    """Generate unless the run was abandoned before this attempt started."""
    if _progress(state).phase == "generating":
        return "generate"
    return END


def route_after_generate(state: Dict[str, Any]) -> str:
    """
    - image produced -> "verify"
    - provider gave up (error) or run abandoned -> END
    Generation failures never cost an attempt; the invoker already retried.
    """
    if _progress(state).phase == "verifying":
        return "verify"
    return END


def route_after_verify(state: Dict[str, Any]) -> str:
    """
    Central retry decision (already taken by the verify node and recorded as phase):
    - retrying -> back to "prepare_attempt" with the incremented attempt
    - passed / failed / error / cancelled -> END
    """
    progress = _progress(state)
    if progress.phase == "retrying" and progress.attempt <= progress.max_attempts:
        return "prepare_attempt"
    return END
