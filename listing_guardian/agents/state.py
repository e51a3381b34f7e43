from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from listing_guardian.app.errors import ErrorKind
from listing_guardian.core.clock import utc_now


AttemptStatus = Literal["generating", "verifying", "passed", "failed", "error"]

# State-machine states. `passed`, `failed`, `error` and `cancelled` are terminal.
FixPhase = Literal[
    "idle",
    "generating",
    "verifying",
    "retrying",
    "passed",
    "failed",
    "error",
    "cancelled",
]

# Coarse phase for display
FixStep = Literal["generating", "verifying", "retrying", "complete", "error"]

TERMINAL_PHASES = frozenset({"passed", "failed", "error", "cancelled"})


def _clamp_score(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return max(0.0, min(100.0, float(v)))
    return v


class _ProviderModel(BaseModel):
    """Accepts the camelCase keys the verification model emits as well as snake_case."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ComponentScores(_ProviderModel):
    identity: float = Field(default=0.0, ge=0.0, le=100.0)
    compliance: float = Field(default=0.0, ge=0.0, le=100.0)
    quality: float = Field(default=0.0, ge=0.0, le=100.0)
    no_new_issues: float = Field(default=0.0, ge=0.0, le=100.0)
    text_layout: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    no_additions: Optional[float] = Field(default=None, ge=0.0, le=100.0)

    @field_validator("*", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> Any:
        return _clamp_score(v)


class VerificationResult(_ProviderModel):
    score: float = Field(ge=0.0, le=100.0)
    is_satisfactory: bool = False
    product_match: bool = False
    component_scores: Optional[ComponentScores] = None
    critique: str = ""
    improvements: Tuple[str, ...] = ()
    passed_checks: Tuple[str, ...] = ()
    failed_checks: Tuple[str, ...] = ()
    thinking_steps: Tuple[str, ...] = ()

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_total(cls, v: Any) -> Any:
        return _clamp_score(v)


class FixAttempt(BaseModel):
    """
    One generate-then-verify cycle. Replaced, never edited, as it moves
    generating -> verifying -> passed/failed/error.
    """
    model_config = ConfigDict(frozen=True)

    attempt: int = Field(ge=1)
    generated_image: str = ""  # data URI
    image_sha256: Optional[str] = None
    verification: Optional[VerificationResult] = None
    status: AttemptStatus = "generating"
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None


class FixOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    custom_prompt: Optional[str] = None
    satisfaction_threshold: float = Field(default=80.0, ge=0.0, le=100.0)
    policy: str = "score_and_identity_v1"

    # Transport-level retries inside one provider call
    max_retries: int = Field(default=3, ge=1)

    # Prompt inputs; category defaults to the asset role
    category: Optional[str] = None
    enhancement_type: str = "compliance_fix"
    preserve_elements: Tuple[str, ...] = ()


class FixProgressState(BaseModel):
    """
    Externally observable state of one fix run.
    Immutable: every transition produces a new snapshot via `evolve`.
    """
    model_config = ConfigDict(frozen=True)

    run_id: str
    asset_id: str
    attempt: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    phase: FixPhase = "idle"
    attempts: Tuple[FixAttempt, ...] = ()
    thinking_steps: Tuple[str, ...] = ()
    last_critique: Optional[str] = None
    custom_prompt: Optional[str] = None
    intermediate_image: Optional[str] = None
    satisfaction_threshold: float = 80.0
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def current_step(self) -> FixStep:
        if self.phase in ("passed", "failed", "cancelled"):
            return "complete"
        if self.phase == "error":
            return "error"
        if self.phase == "idle":
            return "generating"
        return self.phase  # type: ignore[return-value]

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def last_attempt(self) -> Optional[FixAttempt]:
        return self.attempts[-1] if self.attempts else None

    @property
    def passed_attempt(self) -> Optional[FixAttempt]:
        for a in self.attempts:
            if a.status == "passed":
                return a
        return None

    def evolve(self, *, thinking: Iterable[str] = (), **changes: Any) -> "FixProgressState":
        """Return the next snapshot with `changes` applied and `thinking` appended."""
        steps = self.thinking_steps + tuple(s for s in thinking if s)
        return self.model_copy(update={**changes, "thinking_steps": steps, "updated_at": utc_now()})

    def replace_last_attempt(self, attempt: FixAttempt) -> Tuple[FixAttempt, ...]:
        return self.attempts[:-1] + (attempt,)
