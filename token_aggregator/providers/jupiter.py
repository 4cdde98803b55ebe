"""
Jupiter price source provider.

  GET https://lite-api.jup.ag/price/v3?ids={addr1,addr2,...}

Addresses are requested in chunks of 50. A failed chunk is logged and skipped;
the others still produce observations.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from ..models import SourceObservation, to_number
from ..timeutils import now_ms
from .resilience import CircuitBreaker, RetryConfig, resilient_call

logger = logging.getLogger(__name__)

JUPITER_PRICE_URL = "https://lite-api.jup.ag/price/v3"
HTTP_TIMEOUT_S = 10.0
CHUNK_SIZE = 50
SOURCE_NAME = "jupiter"


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def normalize_price_entry(address: Any, entry: Any, fetched_at: int) -> Optional[SourceObservation]:
    token_address = str(address).strip() if address is not None else ""
    if not token_address or not isinstance(entry, dict):
        return None
    return SourceObservation(
        token_address=token_address,
        source=SOURCE_NAME,
        fetched_at=fetched_at,
        price=to_number(entry.get("usdPrice")),
        price_change_24h=to_number(entry.get("priceChange24h")),
    )


class JupiterProvider:
    """
    Poll Jupiter prices for the tokens returned by ``addresses()``.

    ``addresses`` is called on every fetch so the tracked set can grow (for
    example from the store's volume index).
    """

    def __init__(
        self,
        addresses: Callable[[], Iterable[str]],
        *,
        chunk_size: int = CHUNK_SIZE,
        session: Optional[requests.Session] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._addresses = addresses
        self._chunk_size = max(1, int(chunk_size))
        self._session = session or requests.Session()
        self._retry_config = retry_config or RetryConfig()
        self._breaker = CircuitBreaker(provider_name=SOURCE_NAME)

    @property
    def provider_name(self) -> str:
        return SOURCE_NAME

    def _get_json(self, ids: List[str]) -> Any:
        resp = self._session.get(JUPITER_PRICE_URL, params={"ids": ",".join(ids)}, timeout=HTTP_TIMEOUT_S)
        resp.raise_for_status()
        return resp.json()

    def fetch(self) -> List[SourceObservation]:
        addresses = list(dict.fromkeys(a for a in self._addresses() if a))
        if not addresses:
            return []

        latest: Dict[str, SourceObservation] = {}
        for chunk in chunked(addresses, self._chunk_size):
            try:
                data = resilient_call(
                    self._get_json,
                    chunk,
                    retry_config=self._retry_config,
                    circuit_breaker=self._breaker,
                )
            except Exception as exc:
                logger.warning("Jupiter chunk of %d failed: %s", len(chunk), exc)
                continue
            if not isinstance(data, dict):
                logger.warning("Jupiter chunk returned %s, expected object", type(data).__name__)
                continue
            ts = now_ms()
            for addr, entry in data.items():
                obs = normalize_price_entry(addr, entry, ts)
                if obs is None:
                    continue
                current = latest.get(obs.token_address)
                if current is None or (obs.fetched_at or 0) >= (current.fetched_at or 0):
                    latest[obs.token_address] = obs
        return list(latest.values())
