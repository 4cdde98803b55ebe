"""
Resilience primitives for outbound source calls: circuit breaker and retry with
exponential backoff.

Only transient failures are retried (rate limits, 5xx, connection errors and
timeouts); anything else fails fast so bad requests do not hammer a source.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Attempts per DexScreener/Jupiter request and the doubling delay between them."""
    max_retries: int = 4
    base_delay_s: float = 0.6
    max_delay_s: float = 10.0
    backoff_factor: float = 2.0
    retry_on_status_codes: tuple[int, ...] = (429, 500, 502, 503, 504)


@dataclass
class CircuitBreaker:
    """
    Per-source breaker shared by every request a provider makes.

    After ``failure_threshold`` failed calls in a row the source is skipped
    (``is_open``) until ``cooldown_seconds`` have passed; the next call is then let
    through and either closes the breaker again or reopens it.
    """
    provider_name: str
    failure_threshold: int = 3
    cooldown_seconds: float = 60.0
    _failure_count: int = field(default=0, init=False, repr=False)
    _state: str = field(default="CLOSED", init=False, repr=False)
    _last_failure_time: Optional[float] = field(default=None, init=False, repr=False)
    _last_error: Optional[str] = field(default=None, init=False, repr=False)

    @property
    def state(self) -> str:
        if self._state == "OPEN" and self._last_failure_time is not None:
            elapsed = time.monotonic() - self._last_failure_time
            if elapsed >= self.cooldown_seconds:
                self._state = "HALF_OPEN"
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == "OPEN"

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = "CLOSED"
        self._last_error = None

    def record_failure(self, error: str) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        self._last_error = error[:500]
        if self._failure_count >= self.failure_threshold:
            self._state = "OPEN"
            logger.warning(
                "Skipping source %s for %.0fs after %d failed calls: %s",
                self.provider_name, self.cooldown_seconds, self._failure_count, error[:200],
            )


def is_transient(exc: BaseException, cfg: RetryConfig) -> bool:
    """True for rate limits / 5xx responses and transport-level errors."""
    if isinstance(exc, requests.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        return status in cfg.retry_on_status_codes
    return isinstance(exc, (requests.ConnectionError, requests.Timeout))


def resilient_call(
    func: Callable[..., T],
    *args: Any,
    retry_config: Optional[RetryConfig] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call ``func`` for a token source, retrying transient HTTP failures.

    A skipped source (open breaker) raises RuntimeError without calling ``func``.
    Otherwise the last error is re-raised once attempts run out or a
    non-transient error is seen; the breaker counts that as one failure.
    """
    cfg = retry_config or RetryConfig()

    if circuit_breaker and circuit_breaker.is_open:
        raise RuntimeError(
            f"Source {circuit_breaker.provider_name} skipped (breaker open): "
            f"{circuit_breaker.last_error}"
        )

    last_err: Optional[Exception] = None
    for attempt in range(1, cfg.max_retries + 1):
        try:
            result = func(*args, **kwargs)
            if circuit_breaker:
                circuit_breaker.record_success()
            return result
        except Exception as exc:
            last_err = exc
            logger.debug(
                "Attempt %d/%d failed: %s: %s", attempt, cfg.max_retries, type(exc).__name__, exc
            )
            if not is_transient(exc, cfg):
                break
            if attempt < cfg.max_retries:
                delay = min(
                    cfg.base_delay_s * (cfg.backoff_factor ** (attempt - 1)),
                    cfg.max_delay_s,
                )
                sleep(delay)

    if circuit_breaker and last_err:
        circuit_breaker.record_failure(str(last_err))

    raise last_err  # type: ignore[misc]
