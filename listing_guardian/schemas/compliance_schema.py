from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

ComplianceStatus = Literal["PASS", "FAIL"]
Severity = Literal["critical", "warning", "info"]


class Region(BaseModel):
    """Normalised (0..1) bounding box of the area a violation refers to."""
    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)


class Violation(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    category: str
    message: str
    recommendation: str = ""
    affected_region: Optional[Region] = None


class ComplianceResult(BaseModel):
    """
    Output of the (external) compliance analysis step.
    The fix loop consumes it as starting context only.
    """
    model_config = ConfigDict(frozen=True)

    overall_score: float = Field(ge=0.0, le=100.0)
    status: ComplianceStatus
    violations: List[Violation] = Field(default_factory=list)
    fix_recommendations: List[str] = Field(default_factory=list)
    generative_prompt: Optional[str] = None

    def target_improvements(self) -> List[str]:
        """Recommendations ordered by severity, de-duplicated, for the fix instruction."""
        rank = {"critical": 0, "warning": 1, "info": 2}
        out: List[str] = []
        for v in sorted(self.violations, key=lambda v: rank[v.severity]):
            text = (v.recommendation or v.message).strip()
            if text and text not in out:
                out.append(text)
        for rec in self.fix_recommendations:
            rec = rec.strip()
            if rec and rec not in out:
                out.append(rec)
        return out
