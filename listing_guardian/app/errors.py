from __future__ import annotations

from typing import Literal, Optional

ErrorKind = Literal[
    "rate_limit",
    "auth_error",
    "safety_block",
    "bad_request",
    "server_error",
    "image_recitation",
    "no_image_returned",
    "unknown",
]


class AppError(Exception):
    """Base application error"""


class ConfigError(AppError):
    """Missing or invalid configuration"""


class ProviderCallError(AppError):
    """A generation/verification call failed after the invoker gave up"""

    def __init__(self, message: str, error_kind: ErrorKind = "unknown", status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.error_kind = error_kind
        self.status = status


class ProviderTransportError(AppError):
    """No response at all (connection reset, DNS, per-call deadline)"""


class FixAlreadyRunningError(AppError):
    """A fix run is already in flight for this asset"""


class FixNotFoundError(AppError):
    """No fix run known for this asset ID"""


class AgentExecutionError(AppError):
    """Agent or graph execution failure"""
