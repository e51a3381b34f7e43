from __future__ import annotations
import os
from dataclasses import dataclass

from listing_guardian.app.errors import ConfigError


def _get_env(name: str, default: str | None = None) -> str:
    v = os.getenv(name, default)
    if v is None or v == "":
        raise ConfigError(f"Missing required env var: {name}")
    return v


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"Env var {name} must be an integer, got {raw!r}") from e


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"Env var {name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    # Gemini / Vertex
    gemini_api_key: str | None
    project_id: str | None
    vertex_location: str
    generation_model: str
    verification_model: str

    # Fix loop
    fix_max_attempts: int
    satisfaction_threshold: float
    satisfaction_policy: str

    # Provider calls
    provider_max_retries: int
    provider_backoff_ms: int
    provider_timeout_s: float | None

    log_level: str

    def require_api_credentials(self) -> None:
        if not self.gemini_api_key and not self.project_id:
            raise ConfigError("Either GEMINI_API_KEY/GOOGLE_API_KEY or PROJECT_ID must be set")


def load_settings() -> Settings:
    timeout = _get_float("PROVIDER_TIMEOUT_S", 120.0)
    settings = Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
        project_id=os.getenv("PROJECT_ID"),
        vertex_location=os.getenv("VERTEX_LOCATION", "us-central1"),
        generation_model=os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image"),
        verification_model=os.getenv("GEMINI_VERIFY_MODEL", "gemini-2.5-flash"),
        fix_max_attempts=_get_int("FIX_MAX_ATTEMPTS", 3),
        satisfaction_threshold=_get_float("SATISFACTION_THRESHOLD", 80.0),
        satisfaction_policy=os.getenv("SATISFACTION_POLICY", "score_and_identity_v1"),
        provider_max_retries=_get_int("PROVIDER_MAX_RETRIES", 3),
        provider_backoff_ms=_get_int("PROVIDER_BACKOFF_MS", 1000),
        # 0 disables the per-call deadline
        provider_timeout_s=timeout if timeout > 0 else None,
        log_level=_get_env("LOG_LEVEL", "INFO"),
    )

    if settings.fix_max_attempts < 1:
        raise ConfigError("FIX_MAX_ATTEMPTS must be >= 1")
    if settings.provider_max_retries < 1:
        raise ConfigError("PROVIDER_MAX_RETRIES must be >= 1")
    if not 0 <= settings.satisfaction_threshold <= 100:
        raise ConfigError("SATISFACTION_THRESHOLD must be between 0 and 100")
    return settings
