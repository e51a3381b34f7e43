"""Shared fakes for the fix-loop tests."""

import json
from typing import Any, Dict, List, Optional

import pytest

from listing_guardian.agents.state import FixOptions
from listing_guardian.llms.invoker import ResilientInvoker
from listing_guardian.llms.providers.base import (
    GenerationPayload,
    GenerationRequest,
    ProviderResponse,
    VerificationRequest,
)
from listing_guardian.schemas.asset_schema import Asset
from listing_guardian.schemas.compliance_schema import ComplianceResult, Violation
from listing_guardian.tools.image_ops.codec import EncodedImage

JPEG_B64 = "/9j/4AAQSkZJRgABAQAAAQABAAD/"
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


def png(n: int) -> str:
    """Distinct fake PNG body per generated attempt."""
    return f"iVBORw0KGgoAAAANSUhEUgAAAA{n:04d}"


class SleepRecorder:
    """Stands in for asyncio.sleep so backoff waits are observable and instant."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total_ms(self) -> float:
        return sum(self.calls) * 1000


class ScriptedProvider:
    """
    Replays a script of outcomes, one per call. The last entry repeats.
    Entries may be ProviderResponse, an exception instance, or a callable
    taking the request and returning one of those.
    """

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.requests: List[Any] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def _next(self, request: Any) -> ProviderResponse:
        self.requests.append(request)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if callable(item) and not isinstance(item, ProviderResponse):
            item = item(request)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeGenerator(ScriptedProvider):
    async def generate(self, request: GenerationRequest) -> ProviderResponse:
        return await self._next(request)


class FakeVerifier(ScriptedProvider):
    async def verify(self, request: VerificationRequest) -> ProviderResponse:
        return await self._next(request)


def generated(data: str = PNG_B64, media_type: str = "image/png") -> ProviderResponse:
    return ProviderResponse.success(
        GenerationPayload(image=EncodedImage(media_type=media_type, data=data), finish_reason="STOP")
    )


def verdict(
    score: float,
    *,
    product_match: bool = True,
    critique: str = "",
    failed_checks: Optional[List[str]] = None,
    improvements: Optional[List[str]] = None,
    thinking_steps: Optional[List[str]] = None,
) -> ProviderResponse:
    """Verification answer in the provider's camelCase JSON."""
    body: Dict[str, Any] = {
        "score": score,
        "isSatisfactory": score >= 80,
        "productMatch": product_match,
        "componentScores": {"identity": 90, "compliance": score, "quality": 85, "noNewIssues": 90},
        "critique": critique,
        "improvements": improvements or [],
        "passedChecks": ["Product identity preserved"],
        "failedChecks": failed_checks or [],
        "thinkingSteps": thinking_steps or [],
    }
    return ProviderResponse.success(json.dumps(body))


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def invoker(sleeps: SleepRecorder) -> ResilientInvoker:
    return ResilientInvoker(max_retries=3, initial_delay_ms=1000, sleep=sleeps)


@pytest.fixture
def asset() -> Asset:
    return Asset(asset_id="asset_main", image=f"data:image/jpg;base64,{JPEG_B64}", role="MAIN", name="bottle.jpg")


@pytest.fixture
def compliance() -> ComplianceResult:
    return ComplianceResult(
        overall_score=55,
        status="FAIL",
        violations=[
            Violation(
                severity="warning",
                category="Badges",
                message="Promotional badge in corner",
                recommendation="Remove the 'Best Seller' badge",
            ),
            Violation(
                severity="critical",
                category="Background",
                message="Background is light gray",
                recommendation="Replace background with pure white",
            ),
        ],
        fix_recommendations=["Center the product"],
    )


@pytest.fixture
def options() -> FixOptions:
    return FixOptions(max_attempts=3, satisfaction_threshold=80)
