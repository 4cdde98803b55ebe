"""Layered config: defaults <- config.yaml <- environment."""

from __future__ import annotations

import pytest

from token_aggregator import config
from token_aggregator.core.errors import ConfigError

_ENV_VARS = ("TOKEN_AGG_DB_PATH", "TOKEN_AGG_STORE", "REDIS_URL", "TOKEN_AGG_WINDOW_MS", "FETCH_INTERVAL")


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TOKEN_AGG_CONFIG", str(tmp_path / "absent.yaml"))
    return monkeypatch


def _write_yaml(tmp_path, monkeypatch, text: str) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    monkeypatch.setenv("TOKEN_AGG_CONFIG", str(path))


def test_defaults_without_yaml(clean_env):
    assert config.window_seconds() == pytest.approx(0.2)
    assert config.intake_window_seconds() == pytest.approx(0.15)
    assert config.coalesce_arrivals() is True
    assert config.store_backend() == "sqlite"
    assert config.feed_channel() == "state_changes"
    assert config.intake_channel() == "raw_tokens"
    assert config.noise_thresholds() == {
        "volume_epsilon": 1e-6,
        "volume_min_change": 20.0,
        "liquidity_min_change": 1.0,
    }
    assert config.api_bind() == ("127.0.0.1", 3000)


def test_yaml_overrides_defaults(clean_env, tmp_path):
    _write_yaml(
        tmp_path,
        clean_env,
        "pipeline:\n  window_ms: 500\nnoise:\n  volume_min_change: 5\nsources:\n  priority:\n    price: [dexscreener]\n",
    )
    assert config.window_seconds() == pytest.approx(0.5)
    assert config.noise_thresholds()["volume_min_change"] == 5.0
    assert config.noise_thresholds()["liquidity_min_change"] == 1.0
    assert config.source_priority_overrides() == {"price": ["dexscreener"]}


def test_env_overrides_yaml(clean_env, tmp_path):
    _write_yaml(tmp_path, clean_env, "store:\n  db_path: from_yaml.sqlite\n")
    clean_env.setenv("TOKEN_AGG_DB_PATH", "from_env.sqlite")
    clean_env.setenv("TOKEN_AGG_WINDOW_MS", "50")
    clean_env.setenv("FETCH_INTERVAL", "2000")
    clean_env.setenv("REDIS_URL", "redis://cache:6379/1")
    assert config.db_path() == "from_env.sqlite"
    assert config.window_seconds() == pytest.approx(0.05)
    assert config.fetcher_settings()["interval_s"] == pytest.approx(2.0)
    assert config.redis_url() == "redis://cache:6379/1"


def test_invalid_store_backend(clean_env):
    clean_env.setenv("TOKEN_AGG_STORE", "mongodb")
    with pytest.raises(ConfigError):
        config.store_backend()


def test_priority_must_be_lists(clean_env, tmp_path):
    _write_yaml(tmp_path, clean_env, "sources:\n  priority:\n    price: jupiter\n")
    with pytest.raises(ConfigError):
        config.source_priority_overrides()
