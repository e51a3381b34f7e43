from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from listing_guardian.schemas.asset_schema import AssetRole
from listing_guardian.schemas.compliance_schema import Violation
from listing_guardian.tools.image_ops.codec import EncodedImage


@dataclass(frozen=True)
class ProviderResponse:
    """
    Transport-level outcome of one provider call.
    `body` holds the raw error body on failure; `data` the parsed payload on success.
    """
    status: int
    body: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def success(cls, data: Any) -> "ProviderResponse":
        return cls(status=200, data=data)

    @classmethod
    def failure(cls, status: int, message: str, **fields: Any) -> "ProviderResponse":
        return cls(status=status, body=json.dumps({"error": {"message": message, **fields}}))


@dataclass(frozen=True)
class GenerationRequest:
    instruction: str
    image: EncodedImage
    reference_image: Optional[EncodedImage] = None


@dataclass(frozen=True)
class GenerationPayload:
    image: Optional[EncodedImage] = None
    finish_reason: Optional[str] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class VerificationRequest:
    generated_image: EncodedImage
    original_image: EncodedImage
    role: AssetRole
    reference_image: Optional[EncodedImage] = None
    violations: List[Violation] = field(default_factory=list)
    listing_title: Optional[str] = None


class ImageGenerationProvider(Protocol):
    async def generate(self, request: GenerationRequest) -> ProviderResponse:
        """On success, `data` is a GenerationPayload."""
        ...


class VerificationProvider(Protocol):
    async def verify(self, request: VerificationRequest) -> ProviderResponse:
        """On success, `data` is the model's raw text answer."""
        ...
