from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from listing_guardian.agents.state import FixAttempt, FixProgressState

StepStatus = Literal["pending", "in_progress", "completed", "failed"]


class ProgressStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    status: StepStatus
    detail: Optional[str] = None
    score: Optional[float] = None


def _interrupted(state: FixProgressState) -> Optional[str]:
    return "Cancelled" if state.phase == "cancelled" else state.error_message


def _generate_step(n: int, status: StepStatus, detail: Optional[str] = None) -> ProgressStep:
    return ProgressStep(id=f"generate-{n}", label=f"Generate attempt {n}", status=status, detail=detail)


def _verify_step(attempt: FixAttempt, state: FixProgressState) -> ProgressStep:
    n = attempt.attempt
    v = attempt.verification
    base = {"id": f"verify-{n}", "label": f"Verify attempt {n}"}

    if attempt.status in ("passed", "failed") and v is not None:
        status: StepStatus = "completed" if attempt.status == "passed" else "failed"
        return ProgressStep(**base, status=status, score=v.score, detail=v.critique or None)
    if attempt.status == "error":
        return ProgressStep(**base, status="failed", detail=attempt.error_message)
    if state.is_terminal:
        return ProgressStep(**base, status="failed", detail=_interrupted(state))
    return ProgressStep(**base, status="in_progress")


def project(state: FixProgressState) -> List[ProgressStep]:
    """
    Display steps for one fix run: generate/verify per attempt, then "Apply fix".
    Pure view over the snapshot; safe to call mid-flight.
    """
    steps: List[ProgressStep] = []

    for attempt in state.attempts:
        steps.append(_generate_step(attempt.attempt, "completed"))
        steps.append(_verify_step(attempt, state))

    # current attempt has no FixAttempt until its image exists
    started = {a.attempt for a in state.attempts}
    if state.attempt not in started and state.phase in ("generating", "retrying", "error", "cancelled"):
        n = state.attempt
        if state.phase in ("error", "cancelled"):
            steps.append(_generate_step(n, "failed", _interrupted(state)))
        else:
            steps.append(_generate_step(n, "in_progress" if state.phase == "generating" else "pending"))
            steps.append(ProgressStep(id=f"verify-{n}", label=f"Verify attempt {n}", status="pending"))

    if state.phase == "passed":
        final: StepStatus = "completed"
        detail = "Fixed image applied"
    elif state.is_terminal:
        final = "failed"
        detail = {
            "failed": f"No passing fix after {state.max_attempts} attempts",
            "error": state.error_message,
            "cancelled": "Cancelled",
        }.get(state.phase)
    else:
        final = "pending"
        detail = None
    steps.append(ProgressStep(id="finalize", label="Apply fix", status=final, detail=detail))

    return steps
