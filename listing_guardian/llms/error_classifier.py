from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from listing_guardian.app.errors import ErrorKind

# Substring the provider puts in 400 messages when a safety filter fired
SAFETY_MARKER = "safety"


@dataclass(frozen=True)
class ClassifiedError:
    message: str
    error_kind: ErrorKind
    retryable: bool


def _provider_message(body: Any) -> str | None:
    """
    Pull `error.message` out of a provider error body.
    Returns None when the body is not structured JSON at all.
    """
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    if not isinstance(body, dict):
        return None

    err = body.get("error")
    if isinstance(err, dict):
        return str(err.get("message") or "")
    if isinstance(err, str):
        return err
    return str(body.get("message") or "")


def classify_provider_error(status: int, body: Any) -> ClassifiedError:
    """
    Map a failed provider HTTP response to (message, kind, retryable).

    Rules are evaluated in order; an unparseable body only loses the provider's
    own message, the status still decides the kind.
    """
    api_message = _provider_message(body)
    generic = f"API error ({status})"

    if status == 429:
        return ClassifiedError("Rate limit exceeded. Please wait a moment and try again.", "rate_limit", True)
    if status == 403:
        return ClassifiedError("API key invalid or quota exceeded.", "auth_error", False)
    if status == 400:
        if api_message and SAFETY_MARKER in api_message.lower():
            return ClassifiedError("Image was blocked by safety filters.", "safety_block", False)
        return ClassifiedError(f"Invalid request: {api_message or generic}", "bad_request", False)
    if status >= 500:
        return ClassifiedError("AI service temporarily unavailable.", "server_error", True)
    return ClassifiedError(api_message or generic, "unknown", status >= 500)
