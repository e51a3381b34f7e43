"""
Tests for agents.generation_agent and the Gemini response parsing it consumes.
"""

import base64
from types import SimpleNamespace

import pytest

from conftest import FakeGenerator, JPEG_B64, PNG_B64, generated
from listing_guardian.agents.generation_agent import interpret_generation, run_generation
from listing_guardian.app.errors import ProviderCallError
from listing_guardian.llms.providers.base import GenerationPayload, ProviderResponse
from listing_guardian.llms.providers.gemini_client import parse_generation_response
from listing_guardian.tools.image_ops.codec import EncodedImage

SOURCE = EncodedImage("image/jpeg", JPEG_B64)


def _gemini_response(parts, finish_reason="STOP", prompt_feedback=None):
    candidate = SimpleNamespace(
        finish_reason=SimpleNamespace(value=finish_reason) if finish_reason else None,
        content=SimpleNamespace(parts=parts),
    )
    return SimpleNamespace(candidates=[candidate], prompt_feedback=prompt_feedback)


def _image_part(data, mime="image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime), text=None)


def _text_part(text):
    return SimpleNamespace(inline_data=None, text=text)


class TestInterpretGeneration:

    def test_image_is_returned(self):
        image = EncodedImage("image/png", PNG_B64)
        assert interpret_generation(GenerationPayload(image=image, finish_reason="STOP")) is image

    def test_safety_finish(self):
        with pytest.raises(ProviderCallError) as exc:
            interpret_generation(GenerationPayload(finish_reason="SAFETY"))
        assert exc.value.error_kind == "safety_block"

    def test_recitation(self):
        with pytest.raises(ProviderCallError) as exc:
            interpret_generation(GenerationPayload(finish_reason="IMAGE_RECITATION"))
        assert exc.value.error_kind == "image_recitation"

    def test_no_image_includes_model_text(self):
        with pytest.raises(ProviderCallError) as exc:
            interpret_generation(GenerationPayload(finish_reason="STOP", text="I can only describe images."))
        assert exc.value.error_kind == "no_image_returned"
        assert "I can only describe images." in exc.value.message

    def test_empty_image_body_counts_as_missing(self):
        with pytest.raises(ProviderCallError) as exc:
            interpret_generation(GenerationPayload(image=EncodedImage("image/png", ""), finish_reason="STOP"))
        assert exc.value.error_kind == "no_image_returned"


class TestRunGeneration:

    @pytest.mark.asyncio
    async def test_request_shape(self, invoker):
        provider = FakeGenerator([generated()])
        reference = EncodedImage("image/png", "iVBORmain")

        image = await run_generation(
            provider=provider,
            invoker=invoker,
            instruction="Pure white background",
            image=SOURCE,
            reference_image=reference,
        )

        assert image.data == PNG_B64
        request = provider.requests[0]
        assert request.instruction == "Pure white background"
        assert request.image == SOURCE
        assert request.reference_image == reference

    @pytest.mark.asyncio
    async def test_safety_status_is_not_retried(self, invoker, sleeps):
        provider = FakeGenerator([ProviderResponse.failure(400, "Blocked: safety filter triggered")])

        with pytest.raises(ProviderCallError) as exc:
            await run_generation(provider=provider, invoker=invoker, instruction="x", image=SOURCE)

        assert exc.value.error_kind == "safety_block"
        assert exc.value.status == 400
        assert provider.calls == 1
        assert sleeps.calls == []

    @pytest.mark.asyncio
    async def test_missing_image_after_ok_is_not_retried(self, invoker):
        provider = FakeGenerator([ProviderResponse.success(GenerationPayload(finish_reason="IMAGE_RECITATION"))])

        with pytest.raises(ProviderCallError) as exc:
            await run_generation(provider=provider, invoker=invoker, instruction="x", image=SOURCE)

        assert exc.value.error_kind == "image_recitation"
        assert provider.calls == 1


class TestParseGeminiResponse:

    def test_bytes_inline_data(self):
        raw = b"\x89PNG\r\n\x1a\n" + b"\x01" * 8
        payload = parse_generation_response(_gemini_response([_text_part("Here you go"), _image_part(raw)]))

        assert payload.image.media_type == "image/png"
        assert payload.image.to_bytes() == raw
        assert payload.finish_reason == "STOP"

    def test_base64_inline_data(self):
        payload = parse_generation_response(_gemini_response([_image_part(JPEG_B64, mime="image/jpg")]))
        assert payload.image == EncodedImage("image/jpeg", JPEG_B64)

    def test_text_only(self):
        payload = parse_generation_response(_gemini_response([_text_part("Sorry, I can't edit that.")]))
        assert payload.image is None
        assert payload.text == "Sorry, I can't edit that."

    def test_image_safety_finish_is_normalised(self):
        payload = parse_generation_response(_gemini_response([], finish_reason="IMAGE_SAFETY"))
        assert payload.finish_reason == "SAFETY"

    def test_prompt_block_counts_as_safety(self):
        resp = SimpleNamespace(candidates=[], prompt_feedback=SimpleNamespace(block_reason="PROHIBITED_CONTENT"))
        assert parse_generation_response(resp).finish_reason == "SAFETY"

    def test_recitation_passes_through(self):
        payload = parse_generation_response(_gemini_response([], finish_reason="IMAGE_RECITATION"))
        assert payload.finish_reason == "IMAGE_RECITATION"
        with pytest.raises(ProviderCallError) as exc:
            interpret_generation(payload)
        assert exc.value.error_kind == "image_recitation"

    def test_base64_round_trip_of_inline_bytes(self):
        raw = base64.b64decode(PNG_B64)
        payload = parse_generation_response(_gemini_response([_image_part(raw)]))
        assert payload.image.data == PNG_B64
