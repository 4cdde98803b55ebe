"""
Load config from config.yaml with optional env overrides.
Single source of truth for store backend, window lengths, noise thresholds,
source priority, and fetcher settings.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .core.errors import ConfigError

# Defaults if no YAML or env
_DEFAULTS = {
    "pipeline": {
        "window_ms": 200,
        "coalesce": True,
    },
    "intake": {
        "window_ms": 150,
        "channel": "raw_tokens",
    },
    "store": {
        "backend": "sqlite",
        "db_path": "token_state.sqlite",
        "busy_timeout_ms": 5000,
    },
    "redis": {"url": "redis://127.0.0.1:6379"},
    "feed": {"channel": "state_changes"},
    "noise": {
        "volume_epsilon": 1e-6,
        "volume_min_change": 20.0,
        "liquidity_min_change": 1.0,
    },
    "sources": {"priority": {}},
    "fetchers": {
        "interval_s": 8.0,
        "dexscreener_query": "SOL/USDC",
        "jupiter_chunk_size": 50,
    },
    "api": {"host": "127.0.0.1", "port": 3000},
}

_STORE_BACKENDS = ("sqlite", "redis")


def _config_yaml_path() -> Path:
    """Config.yaml lives at repo root (parent of package dir); TOKEN_AGG_CONFIG overrides."""
    override = os.environ.get("TOKEN_AGG_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    config_path = _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _env_overrides() -> dict:
    overrides: dict = {}
    path = os.environ.get("TOKEN_AGG_DB_PATH")
    if path:
        overrides.setdefault("store", {})["db_path"] = path
    backend = os.environ.get("TOKEN_AGG_STORE")
    if backend:
        overrides.setdefault("store", {})["backend"] = backend
    redis_url = os.environ.get("REDIS_URL")
    if redis_url:
        overrides.setdefault("redis", {})["url"] = redis_url
    window = os.environ.get("TOKEN_AGG_WINDOW_MS")
    if window:
        overrides.setdefault("pipeline", {})["window_ms"] = window
    interval_ms = os.environ.get("FETCH_INTERVAL")
    if interval_ms:
        overrides.setdefault("fetchers", {})["interval_s"] = float(interval_ms) / 1000.0
    return overrides


def get_config() -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(_DEFAULTS, _load_yaml())
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors
def window_seconds() -> float:
    return float(get_config()["pipeline"]["window_ms"]) / 1000.0


def coalesce_arrivals() -> bool:
    return bool(get_config()["pipeline"]["coalesce"])


def intake_window_seconds() -> float:
    return float(get_config()["intake"]["window_ms"]) / 1000.0


def intake_channel() -> str:
    return str(get_config()["intake"]["channel"])


def store_backend() -> str:
    backend = str(get_config()["store"]["backend"]).strip().lower()
    if backend not in _STORE_BACKENDS:
        raise ConfigError(f"store.backend must be one of {_STORE_BACKENDS}, got '{backend}'")
    return backend


def db_path() -> str:
    return str(get_config()["store"]["db_path"])


def db_busy_timeout_ms() -> int:
    return int(get_config()["store"]["busy_timeout_ms"])


def redis_url() -> str:
    return str(get_config()["redis"]["url"])


def feed_channel() -> str:
    return str(get_config()["feed"]["channel"])


def noise_thresholds() -> Dict[str, float]:
    return {k: float(v) for k, v in get_config()["noise"].items()}


def source_priority_overrides() -> Dict[str, List[str]]:
    raw = get_config()["sources"].get("priority") or {}
    if not isinstance(raw, dict):
        raise ConfigError("sources.priority must be a mapping of field -> [source, ...]")
    out: Dict[str, List[str]] = {}
    for k, v in raw.items():
        if not isinstance(v, (list, tuple)):
            raise ConfigError(f"sources.priority.{k} must be a list of source names")
        out[str(k)] = [str(s) for s in v]
    return out


def fetcher_settings() -> Dict[str, Any]:
    return dict(get_config()["fetchers"])


def api_bind() -> tuple[str, int]:
    api = get_config()["api"]
    return str(api["host"]), int(api["port"])
