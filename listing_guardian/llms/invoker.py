from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from listing_guardian.app.errors import ProviderTransportError
from listing_guardian.llms.error_classifier import classify_provider_error
from listing_guardian.llms.providers.base import ProviderResponse

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_DELAY_MS = 1000

ProviderCall = Callable[[], Awaitable[ProviderResponse]]
SleepFn = Callable[[float], Awaitable[None]]


class ResilientInvoker:
    """
    Runs one provider call with bounded retries and exponential backoff.

    - OK responses return immediately
    - failed responses are classified; non-retryable ones (or the last attempt)
      are returned unchanged, never turned into a success
    - transport errors / per-call timeouts are retried until the last attempt,
      then re-raised as ProviderTransportError

    Worst-case total wait is initial_delay_ms * (2^(max_retries-1) - 1).
    """

    def __init__(
        self,
        *,
        max_retries: int = MAX_RETRIES,
        initial_delay_ms: int = INITIAL_DELAY_MS,
        call_timeout_s: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
        name: str = "provider",
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.max_retries = max_retries
        self.initial_delay_ms = initial_delay_ms
        self.call_timeout_s = call_timeout_s
        self.name = name
        self._sleep = sleep

    async def _call_once(self, call: ProviderCall) -> ProviderResponse:
        try:
            if self.call_timeout_s is None:
                return await call()
            return await asyncio.wait_for(call(), timeout=self.call_timeout_s)
        except asyncio.TimeoutError as e:
            raise ProviderTransportError(f"{self.name} call exceeded {self.call_timeout_s}s deadline") from e
        except httpx.TransportError as e:
            raise ProviderTransportError(f"{self.name} transport error: {e}") from e

    async def _backoff(self, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000.0)

    async def invoke(self, call: ProviderCall, max_retries: Optional[int] = None) -> ProviderResponse:
        retries = max_retries or self.max_retries
        delay = self.initial_delay_ms

        for attempt in range(1, retries + 1):
            try:
                response = await self._call_once(call)
            except ProviderTransportError as e:
                if attempt == retries:
                    logger.error(
                        f"{self.name}: attempt {attempt}/{retries} failed without response, giving up",
                        extra={"attempt": attempt},
                    )
                    raise
                logger.warning(
                    f"{self.name}: attempt {attempt}/{retries} failed without response: {e}",
                    extra={"attempt": attempt, "delay_ms": delay},
                )
                await self._backoff(delay)
                delay *= 2
                continue

            if response.ok:
                return response

            err = classify_provider_error(response.status, response.body)
            logger.warning(
                f"{self.name}: attempt {attempt}/{retries}: {err.message}",
                extra={"attempt": attempt, "status": response.status, "error_kind": err.error_kind},
            )
            if not err.retryable or attempt == retries:
                return response

            await self._backoff(delay)
            delay *= 2

        # only reachable when retries < 1
        raise ValueError("max_retries must be >= 1")
