"""
Retry and circuit breaker around outbound source calls.

Verifies that:
- Transient errors (429/5xx, connection errors) are retried with backoff
- Other errors fail fast
- The breaker opens after repeated failures and short-circuits calls
"""
from __future__ import annotations

import pytest
import requests

from token_aggregator.providers.resilience import CircuitBreaker, RetryConfig, is_transient, resilient_call


def _http_error(status: int) -> requests.HTTPError:
    resp = requests.Response()
    resp.status_code = status
    return requests.HTTPError(f"HTTP {status}", response=resp)


class _Flaky:
    def __init__(self, errors):
        self._errors = list(errors)
        self.call_count = 0

    def __call__(self):
        self.call_count += 1
        if self._errors:
            raise self._errors.pop(0)
        return "ok"


def test_transient_classification():
    cfg = RetryConfig()
    assert is_transient(_http_error(429), cfg)
    assert is_transient(_http_error(503), cfg)
    assert not is_transient(_http_error(404), cfg)
    assert is_transient(requests.ConnectionError("reset"), cfg)
    assert is_transient(requests.Timeout("slow"), cfg)
    assert not is_transient(ValueError("bad json"), cfg)


def test_retries_transient_errors_with_backoff():
    sleeps = []
    func = _Flaky([requests.ConnectionError("reset"), _http_error(502)])
    cfg = RetryConfig(max_retries=4, base_delay_s=0.5, backoff_factor=2.0)
    assert resilient_call(func, retry_config=cfg, sleep=sleeps.append) == "ok"
    assert func.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_non_transient_error_fails_fast():
    sleeps = []
    func = _Flaky([_http_error(400)])
    with pytest.raises(requests.HTTPError):
        resilient_call(func, retry_config=RetryConfig(max_retries=4), sleep=sleeps.append)
    assert func.call_count == 1
    assert sleeps == []


def test_gives_up_after_max_retries():
    func = _Flaky([requests.Timeout("t")] * 5)
    with pytest.raises(requests.Timeout):
        resilient_call(func, retry_config=RetryConfig(max_retries=3), sleep=lambda _: None)
    assert func.call_count == 3


def test_circuit_breaker_opens_and_short_circuits():
    breaker = CircuitBreaker(provider_name="jupiter", failure_threshold=2, cooldown_seconds=60)
    func = _Flaky([ValueError("boom")] * 10)
    for _ in range(2):
        with pytest.raises(ValueError):
            resilient_call(func, retry_config=RetryConfig(max_retries=1), circuit_breaker=breaker)
    assert breaker.is_open
    with pytest.raises(RuntimeError, match="breaker open"):
        resilient_call(func, circuit_breaker=breaker)
    assert func.call_count == 2


def test_circuit_breaker_half_open_after_cooldown():
    breaker = CircuitBreaker(provider_name="dexscreener", failure_threshold=1, cooldown_seconds=0)
    breaker.record_failure("down")
    assert breaker.state == "HALF_OPEN"
    assert resilient_call(lambda: 42, circuit_breaker=breaker) == 42
    assert breaker.state == "CLOSED"
