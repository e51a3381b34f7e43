from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from listing_guardian.agents.state import VerificationResult
from listing_guardian.app.errors import ProviderCallError
from listing_guardian.core.utils import ensure_str_list
from listing_guardian.llms.error_classifier import classify_provider_error
from listing_guardian.llms.invoker import ResilientInvoker
from listing_guardian.llms.providers.base import VerificationProvider, VerificationRequest
from listing_guardian.llms.structured import extract_json, validate_with_pydantic
from listing_guardian.schemas.asset_schema import AssetRole
from listing_guardian.schemas.compliance_schema import Violation
from listing_guardian.tools.image_ops.codec import EncodedImage

logger = logging.getLogger(__name__)

_LIST_FIELDS = (
    "improvements",
    "passedChecks", "passed_checks",
    "failedChecks", "failed_checks",
    "thinkingSteps", "thinking_steps",
)


def parse_verification(raw: Any) -> VerificationResult:
    """
    Verification text -> VerificationResult, or ProviderCallError(kind=unknown).
    Lenient on list fields (a bare string becomes a one-item list), strict on `score`.
    """
    data: Dict[str, Any] = raw if isinstance(raw, dict) else extract_json(raw if isinstance(raw, str) else "")
    if not data:
        raise ProviderCallError("Could not parse verification result", "unknown")
    if "score" not in data:
        raise ProviderCallError("Verification result is missing a score", "unknown")

    cleaned = dict(data)
    for key in _LIST_FIELDS:
        if key in cleaned:
            cleaned[key] = ensure_str_list(cleaned[key])
    if "critique" in cleaned and cleaned["critique"] is None:
        cleaned["critique"] = ""

    try:
        return validate_with_pydantic(cleaned, VerificationResult)
    except ValidationError as ve:
        first = ve.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ProviderCallError(f"Invalid verification result ({loc}: {first.get('msg', 'invalid')})", "unknown") from ve


async def run_verification(
    *,
    provider: VerificationProvider,
    invoker: ResilientInvoker,
    generated_image: EncodedImage,
    original_image: EncodedImage,
    role: AssetRole,
    reference_image: Optional[EncodedImage] = None,
    violations: Optional[List[Violation]] = None,
    listing_title: Optional[str] = None,
    max_retries: Optional[int] = None,
) -> VerificationResult:
    request = VerificationRequest(
        generated_image=generated_image,
        original_image=original_image,
        role=role,
        reference_image=reference_image,
        violations=list(violations or []),
        listing_title=listing_title,
    )
    response = await invoker.invoke(lambda: provider.verify(request), max_retries=max_retries)

    if not response.ok:
        err = classify_provider_error(response.status, response.body)
        raise ProviderCallError(err.message, err.error_kind, status=response.status)

    result = parse_verification(response.data)
    logger.info(f"Verification complete. Score: {result.score:g}, product match: {result.product_match}")
    if result.failed_checks:
        logger.info(f"Failed checks: {', '.join(result.failed_checks)}")
    return result
