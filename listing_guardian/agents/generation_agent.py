from __future__ import annotations

import logging
from typing import Optional

from listing_guardian.app.errors import ProviderCallError
from listing_guardian.llms.error_classifier import classify_provider_error
from listing_guardian.llms.invoker import ResilientInvoker
from listing_guardian.llms.providers.base import (
    GenerationPayload,
    GenerationRequest,
    ImageGenerationProvider,
)
from listing_guardian.tools.image_ops.codec import EncodedImage

logger = logging.getLogger(__name__)


def interpret_generation(payload: Optional[GenerationPayload]) -> EncodedImage:
    """
    A 200 from the provider can still carry no image. Map the reasons to the
    error taxonomy: safety finish, recitation refusal, or plain no image.
    """
    if payload is not None and payload.image is not None and payload.image.data:
        return payload.image

    reason = (payload.finish_reason if payload else None) or ""
    if reason == "SAFETY":
        raise ProviderCallError("Image generation was blocked by safety filters.", "safety_block", status=400)
    if reason == "IMAGE_RECITATION":
        raise ProviderCallError(
            "The AI could not generate a fixed version. Try a different custom prompt.",
            "image_recitation",
            status=422,
        )

    detail = ""
    if payload is not None and payload.text:
        detail = f" Model said: {payload.text[:240]}"
    raise ProviderCallError(
        f"No image was generated (finish reason: {reason or 'none'}).{detail}",
        "no_image_returned",
        status=502,
    )


async def run_generation(
    *,
    provider: ImageGenerationProvider,
    invoker: ResilientInvoker,
    instruction: str,
    image: EncodedImage,
    reference_image: Optional[EncodedImage] = None,
    max_retries: Optional[int] = None,
) -> EncodedImage:
    """
    One generation call with transport-level retries.
    Raises ProviderCallError carrying the classified error kind.
    """
    request = GenerationRequest(instruction=instruction, image=image, reference_image=reference_image)
    response = await invoker.invoke(lambda: provider.generate(request), max_retries=max_retries)

    if not response.ok:
        err = classify_provider_error(response.status, response.body)
        raise ProviderCallError(err.message, err.error_kind, status=response.status)

    generated = interpret_generation(response.data)
    logger.info(f"Generated {generated.media_type} image ({len(generated.data)} b64 chars)")
    return generated
