# listing_guardian/llms/providers/gemini_client.py
from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, List, Optional

import httpx
from google import genai
from google.genai import errors, types

from listing_guardian.app.errors import ConfigError, ProviderTransportError
from listing_guardian.llms.prompt_registry import compose_verification_prompt
from listing_guardian.llms.providers.base import (
    GenerationPayload,
    GenerationRequest,
    ProviderResponse,
    VerificationRequest,
)
from listing_guardian.tools.image_ops.codec import EncodedImage, extract

logger = logging.getLogger(__name__)

# Provider-side blocks we report as a safety finish
_SAFETY_REASONS = {"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT", "IMAGE_PROHIBITED_CONTENT", "BLOCKLIST"}


def build_genai_client(
    api_key: Optional[str] = None,
    project_id: Optional[str] = None,
    location: Optional[str] = None,
) -> genai.Client:
    api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    project_id = project_id or os.getenv("PROJECT_ID")
    location = location or os.getenv("VERTEX_LOCATION", "us-central1")

    if api_key and project_id:
        # Vertex AI with API key
        return genai.Client(vertexai=True, api_key=api_key)
    if api_key:
        # Gemini API directly
        return genai.Client(api_key=api_key)
    if project_id:
        # Vertex AI with Application Default Credentials
        return genai.Client(vertexai=True, project=project_id, location=location)
    raise ConfigError(
        "Either GEMINI_API_KEY/GOOGLE_API_KEY (Gemini API) or PROJECT_ID (Vertex AI with ADC) must be set"
    )


def _image_part(image: EncodedImage) -> types.Part:
    return types.Part.from_bytes(data=image.to_bytes(), mime_type=image.media_type)


def _api_error_response(e: errors.APIError) -> ProviderResponse:
    body = e.details if e.details else {"error": {"message": e.message or str(e)}}
    return ProviderResponse(status=int(e.code or 500), body=json.dumps(body, default=str))


def _enum_value(v: Any) -> Optional[str]:
    if v is None:
        return None
    return str(getattr(v, "value", v))


def parse_generation_response(resp: Any) -> GenerationPayload:
    """
    Defensive parsing across common genai response shapes.
    Scans all candidates -> all parts for inline image data; keeps the first
    text part and the first candidate's finish reason for error reporting.
    """
    candidates = getattr(resp, "candidates", None) or []
    finish_reason: Optional[str] = None
    text: Optional[str] = None

    for cand in candidates:
        if finish_reason is None:
            finish_reason = _enum_value(getattr(cand, "finish_reason", None))
        content = getattr(cand, "content", None)
        if not content:
            continue
        for part in getattr(content, "parts", None) or []:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is not None:
                data = getattr(inline_data, "data", None)
                mime = getattr(inline_data, "mime_type", None) or "image/png"
                # data may be bytes or base64 str
                if isinstance(data, (bytes, bytearray)) and data:
                    b64 = base64.b64encode(bytes(data)).decode("ascii")
                    return GenerationPayload(image=extract(f"data:{mime};base64,{b64}"), finish_reason=finish_reason)
                if isinstance(data, str) and data:
                    return GenerationPayload(image=extract(f"data:{mime};base64,{data}"), finish_reason=finish_reason)
            part_text = getattr(part, "text", None)
            if text is None and isinstance(part_text, str) and part_text.strip():
                text = part_text.strip()

    if finish_reason is None:
        feedback = getattr(resp, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None) is not None:
            finish_reason = "SAFETY"

    if finish_reason in _SAFETY_REASONS:
        finish_reason = "SAFETY"
    return GenerationPayload(image=None, finish_reason=finish_reason, text=text)


class GeminiImageClient:
    """
    Gemini image generation (image-in, image-out editing) on the async client.
    SDK errors become ProviderResponse failures so the invoker can classify them.
    """

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self.client = client or build_genai_client()
        self.model = model or os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")

    def _config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=1.0,
            response_modalities=["TEXT", "IMAGE"],  # Critical for image generation
        )

    def _contents(self, request: GenerationRequest) -> List[types.Content]:
        parts = [types.Part.from_text(text=request.instruction), _image_part(request.image)]
        if request.reference_image is not None:
            parts.append(types.Part.from_text(text="Main product reference image (use for product consistency):"))
            parts.append(_image_part(request.reference_image))
        return [types.Content(role="user", parts=parts)]

    async def generate(self, request: GenerationRequest) -> ProviderResponse:
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=self._contents(request),
                config=self._config(),
            )
        except errors.APIError as e:
            return _api_error_response(e)
        except httpx.TransportError as e:
            raise ProviderTransportError(f"Gemini generation transport error: {e}") from e

        payload = parse_generation_response(resp)
        logger.debug(f"Gemini generation finished: image={payload.image is not None} reason={payload.finish_reason}")
        return ProviderResponse.success(payload)


class GeminiVerifier:
    """Vision model that scores a generated fix against the original."""

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        threshold: float = 80.0,
    ):
        self.client = client or build_genai_client()
        self.model = model or os.getenv("GEMINI_VERIFY_MODEL", "gemini-2.5-flash")
        self.threshold = threshold

    def _contents(self, request: VerificationRequest) -> List[types.Content]:
        parts = [
            types.Part.from_text(text=f"Verify this {request.role} AI-generated image against marketplace compliance requirements."),
            types.Part.from_text(text="=== ORIGINAL IMAGE (source with violations) ==="),
            _image_part(request.original_image),
            types.Part.from_text(text="=== GENERATED IMAGE (AI-corrected, needs verification) ==="),
            _image_part(request.generated_image),
        ]
        if request.reference_image is not None:
            parts.append(types.Part.from_text(text="=== MAIN PRODUCT REFERENCE (generated image must match this product) ==="))
            parts.append(_image_part(request.reference_image))
        parts.append(types.Part.from_text(text="Execute the full verification protocol and return the JSON assessment."))
        return [types.Content(role="user", parts=parts)]

    async def verify(self, request: VerificationRequest) -> ProviderResponse:
        system = compose_verification_prompt(
            request.role,
            violations=request.violations,
            listing_title=request.listing_title,
            has_reference=request.reference_image is not None,
            threshold=self.threshold,
        )
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=self._contents(request),
                config=types.GenerateContentConfig(
                    system_instruction=system,
                    response_mime_type="application/json",
                ),
            )
        except errors.APIError as e:
            return _api_error_response(e)
        except httpx.TransportError as e:
            raise ProviderTransportError(f"Gemini verification transport error: {e}") from e

        return ProviderResponse.success(resp.text or "")
