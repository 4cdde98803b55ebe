"""
DexScreener source provider.

Uses the public DexScreener API (no authentication required):
  GET https://api.dexscreener.com/latest/dex/search?q={query}

Each pair in the response becomes one observation for its base token. When a
token trades in several pairs, the deepest pool (highest USD liquidity) wins.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..models import SourceObservation, to_number
from ..timeutils import now_ms
from .resilience import CircuitBreaker, RetryConfig, resilient_call

logger = logging.getLogger(__name__)

DEX_BASE_URL = "https://api.dexscreener.com"
HTTP_TIMEOUT_S = 10.0
SOURCE_NAME = "dexscreener"


def _safe_get(d: Dict[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = d
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def _txn_count(pair: Dict[str, Any]) -> Optional[float]:
    buys = to_number(_safe_get(pair, "txns.h24.buys"))
    sells = to_number(_safe_get(pair, "txns.h24.sells"))
    if buys is None and sells is None:
        return None
    return (buys or 0) + (sells or 0)


def normalize_pair(pair: Dict[str, Any], fetched_at: int) -> Optional[SourceObservation]:
    """One DexScreener pair dict -> observation for its base token; None without an address."""
    address = _safe_get(pair, "baseToken.address") or pair.get("tokenAddress")
    if not isinstance(address, str) or not address.strip():
        return None
    return SourceObservation(
        token_address=address.strip(),
        source=SOURCE_NAME,
        fetched_at=fetched_at,
        token_name=_safe_get(pair, "baseToken.name"),
        token_ticker=_safe_get(pair, "baseToken.symbol"),
        protocol=pair.get("dexId"),
        price=to_number(pair.get("priceUsd")),
        volume=to_number(_safe_get(pair, "volume.h24")),
        liquidity=to_number(_safe_get(pair, "liquidity.usd")),
        market_cap=to_number(pair.get("marketCap") if pair.get("marketCap") is not None else pair.get("fdv")),
        transaction_count=_txn_count(pair),
        extras={
            k: v
            for k, v in (("pair_address", pair.get("pairAddress")), ("chain_id", pair.get("chainId")))
            if v is not None
        },
    )


class DexscreenerProvider:
    """Poll DexScreener search results for one query."""

    def __init__(
        self,
        query: str = "SOL/USDC",
        *,
        chain_id: Optional[str] = "solana",
        session: Optional[requests.Session] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._query = query
        self._chain_id = chain_id.lower() if chain_id else None
        self._session = session or requests.Session()
        self._retry_config = retry_config or RetryConfig()
        self._breaker = CircuitBreaker(provider_name=SOURCE_NAME)

    @property
    def provider_name(self) -> str:
        return SOURCE_NAME

    def _get_json(self, url: str, params: Dict[str, str]) -> Any:
        resp = self._session.get(url, params=params, timeout=HTTP_TIMEOUT_S)
        resp.raise_for_status()
        return resp.json()

    def fetch(self) -> List[SourceObservation]:
        data = resilient_call(
            self._get_json,
            f"{DEX_BASE_URL}/latest/dex/search",
            {"q": self._query},
            retry_config=self._retry_config,
            circuit_breaker=self._breaker,
        )
        pairs = data.get("pairs") if isinstance(data, dict) else None
        if not isinstance(pairs, list):
            raise RuntimeError(f"Unexpected DexScreener response shape: {type(data).__name__}")

        ts = now_ms()
        best: Dict[str, SourceObservation] = {}
        for pair in pairs:
            if not isinstance(pair, dict):
                continue
            if self._chain_id and (pair.get("chainId") or "").strip().lower() != self._chain_id:
                continue
            obs = normalize_pair(pair, ts)
            if obs is None:
                continue
            current = best.get(obs.token_address)
            if current is None or (obs.liquidity or 0) > (current.liquidity or 0):
                best[obs.token_address] = obs
        logger.debug("DexScreener %r: %d pairs -> %d tokens", self._query, len(pairs), len(best))
        return list(best.values())
