from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

load_dotenv()  # Load .env file

from listing_guardian.agents.state import FixOptions
from listing_guardian.app.logging import setup_logging
from listing_guardian.app.settings import Settings, load_settings
from listing_guardian.core.ids import new_asset_id
from listing_guardian.llms.invoker import ResilientInvoker
from listing_guardian.llms.providers.gemini_client import (
    GeminiImageClient,
    GeminiVerifier,
    build_genai_client,
)
from listing_guardian.schemas.asset_schema import Asset
from listing_guardian.schemas.compliance_schema import ComplianceResult
from listing_guardian.session.fix_orchestrator import FixOrchestrator
from listing_guardian.session.progress import project
from listing_guardian.tools.image_ops.codec import extract


def build_orchestrator(s: Settings) -> FixOrchestrator:
    s.require_api_credentials()
    client = build_genai_client(s.gemini_api_key, s.project_id, s.vertex_location)

    generator = GeminiImageClient(client=client, model=s.generation_model)
    verifier = GeminiVerifier(client=client, model=s.verification_model, threshold=s.satisfaction_threshold)

    return FixOrchestrator(
        generator,
        verifier,
        invoker=ResilientInvoker(
            max_retries=s.provider_max_retries,
            initial_delay_ms=s.provider_backoff_ms,
            call_timeout_s=s.provider_timeout_s,
            name="generation",
        ),
        verify_invoker=ResilientInvoker(
            max_retries=s.provider_max_retries,
            initial_delay_ms=s.provider_backoff_ms,
            call_timeout_s=s.provider_timeout_s,
            name="verification",
        ),
    )


async def run_fix_async(
    *,
    image: str,
    compliance: Dict[str, Any],
    role: str = "SECONDARY",
    asset_id: Optional[str] = None,
    listing_title: Optional[str] = None,
    main_image: Optional[str] = None,
    custom_prompt: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Minimal callable entrypoint:
    - load settings + logging
    - build Gemini generation/verification providers
    - run the fix loop for one image
    - return {asset_id, run_id, phase, attempts, fixed_image, steps}
    """
    s = load_settings()
    setup_logging(s.log_level)

    asset = Asset(asset_id=asset_id or new_asset_id(), image=image, role=role)
    result = ComplianceResult.model_validate(compliance)
    options = FixOptions(
        max_attempts=s.fix_max_attempts,
        custom_prompt=custom_prompt,
        satisfaction_threshold=s.satisfaction_threshold,
        policy=s.satisfaction_policy,
        max_retries=s.provider_max_retries,
    )

    orch = build_orchestrator(s)
    final = await orch.run_fix(
        asset,
        result,
        options,
        reference_image=extract(main_image) if main_image else None,
        listing_title=listing_title,
    )

    attempts: List[Dict[str, Any]] = [
        {
            "attempt": a.attempt,
            "status": a.status,
            "score": a.verification.score if a.verification else None,
            "image_sha256": a.image_sha256,
            "error_kind": a.error_kind,
        }
        for a in final.attempts
    ]
    return {
        "asset_id": asset.asset_id,
        "run_id": final.run_id,
        "phase": final.phase,
        "attempts": attempts,
        "error_kind": final.error_kind,
        "error_message": final.error_message,
        "last_critique": final.last_critique,
        "fixed_image": asset.fixed_image,
        "steps": [step.model_dump() for step in project(final)],
    }


def run_fix(**kwargs: Any) -> Dict[str, Any]:
    """Blocking wrapper around `run_fix_async`."""
    return asyncio.run(run_fix_async(**kwargs))
