from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from trendpulse.core.config import BACKOFF_BASE_MS, BACKOFF_CAP_MS, BACKOFF_JITTER_MS, GuardOptions
from trendpulse.core.exceptions import ErrorKind
from trendpulse.domain.models import BreakerStatus, ProviderCallResult

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass
class BreakerState:
    """Circuit breaker counters for one provider. ``open_until`` is a reading of the store clock."""

    consecutive_failures: int = 0
    open_until: float | None = None

    def is_open(self, now: float) -> bool:
        return self.open_until is not None and self.open_until > now


class BreakerStore:
    """Process-wide breaker state keyed by provider name."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._states: dict[str, BreakerState] = {}

    def get(self, provider: str) -> BreakerState:
        state = self._states.get(provider)
        if state is None:
            state = self._states[provider] = BreakerState()
        return state

    def record_success(self, provider: str) -> None:
        state = self.get(provider)
        state.consecutive_failures = 0
        state.open_until = None

    def record_failure(self, provider: str, options: GuardOptions) -> bool:
        """Count a failed call; return True when this failure opened the breaker."""
        state = self.get(provider)
        state.consecutive_failures += 1
        if state.consecutive_failures >= options.breaker_failure_threshold:
            state.open_until = self.clock() + options.breaker_open_ms / 1000
            return True
        return False

    def reset(self, provider: str | None = None) -> None:
        if provider is None:
            self._states.clear()
        else:
            self._states.pop(provider, None)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        now = self.clock()
        return {
            name: {
                "consecutive_failures": state.consecutive_failures,
                "open": state.is_open(now),
                "open_ms_left": max(0, int((state.open_until - now) * 1000)) if state.is_open(now) else 0,
            }
            for name, state in sorted(self._states.items())
        }


def backoff_ms(attempt: int, jitter: Callable[[float, float], float] = random.uniform) -> float:
    """Exponential backoff capped at 4s, plus up to 250ms of jitter."""
    base = min(BACKOFF_BASE_MS * 2 ** attempt, BACKOFF_CAP_MS)
    return base + jitter(0, BACKOFF_JITTER_MS)


def _error_kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.PROVIDER_TIMEOUT
    kind = getattr(exc, "kind", None)
    return kind if isinstance(kind, ErrorKind) else ErrorKind.PROVIDER_ERROR


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return message or exc.__class__.__name__


class ResilienceGuard:
    """
    Wraps provider calls with a timeout, bounded retries and a circuit breaker.

    ``call`` never raises for provider failures. Every outcome, including a
    short-circuit by an open breaker, comes back as a ``ProviderCallResult``.
    Cancellation of the surrounding task (an outer request deadline) still
    propagates, but counts against the provider's breaker like a timeout.
    """

    def __init__(
        self,
        options: GuardOptions | None = None,
        store: BreakerStore | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.options = options or GuardOptions()
        self.store = store or BreakerStore()
        self._sleep = sleep
        self._jitter = jitter

    async def call(
        self,
        provider: str,
        fn: Callable[[], Awaitable[R]],
        options: GuardOptions | None = None,
    ) -> ProviderCallResult:
        opts = options or self.options
        state = self.store.get(provider)
        now = self.store.clock()

        if state.is_open(now):
            logger.info(
                "Breaker open for %s; skipping call",
                provider,
                extra={"provider": provider, "error_kind": ErrorKind.BREAKER_OPEN.value, "breaker_state": "open"},
            )
            return ProviderCallResult(
                provider=provider,
                ok=False,
                error_kind=ErrorKind.BREAKER_OPEN,
                error=f"breaker_open:{provider}",
                attempts=0,
                breaker_state=BreakerStatus.OPEN,
            )

        last_exc: BaseException | None = None
        attempts = 0
        try:
            for attempt in range(opts.max_retries + 1):
                attempts = attempt + 1
                try:
                    data = await asyncio.wait_for(fn(), timeout=opts.timeout_ms / 1000)
                except Exception as exc:
                    last_exc = exc
                    logger.warning(
                        "Provider %s attempt %s failed: %s",
                        provider,
                        attempts,
                        _describe(exc),
                        extra={"provider": provider, "attempt": attempts, "error_kind": _error_kind(exc).value},
                    )
                    if attempt < opts.max_retries:
                        await self._sleep(backoff_ms(attempt, self._jitter) / 1000)
                    continue

                self.store.record_success(provider)
                items = data if isinstance(data, list) else ([] if data is None else [data])
                return ProviderCallResult(provider=provider, ok=True, items=items, attempts=attempts)
        except asyncio.CancelledError:
            logger.warning(
                "Provider %s cancelled during attempt %s",
                provider,
                attempts,
                extra={"provider": provider, "attempt": attempts, "error_kind": ErrorKind.PROVIDER_TIMEOUT.value},
            )
            self._record_failure(provider, opts, ErrorKind.PROVIDER_TIMEOUT)
            raise

        kind = _error_kind(last_exc) if last_exc is not None else ErrorKind.PROVIDER_ERROR
        opened = self._record_failure(provider, opts, kind)
        return ProviderCallResult(
            provider=provider,
            ok=False,
            error_kind=kind,
            error=_describe(last_exc) if last_exc is not None else "unknown_error",
            attempts=attempts,
            breaker_state=BreakerStatus.OPENED if opened else BreakerStatus.CLOSED,
        )

    def _record_failure(self, provider: str, options: GuardOptions, kind: ErrorKind) -> bool:
        opened = self.store.record_failure(provider, options)
        if opened:
            logger.error(
                "Breaker opened for %s after %s consecutive failures",
                provider,
                self.store.get(provider).consecutive_failures,
                extra={"provider": provider, "error_kind": kind.value, "breaker_state": "opened"},
            )
        return opened
