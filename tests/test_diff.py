"""Field-by-field delta between snapshots."""

from __future__ import annotations

from token_aggregator.models import TokenSnapshot
from token_aggregator.pipeline.diff import diff_snapshots


def test_no_previous_snapshot_reports_everything():
    new = TokenSnapshot(token_address="TokA", price=1.0, sources_used=("jupiter",), updated_at=5)
    assert diff_snapshots(None, new) == new.to_dict()


def test_numbers_compare_by_value():
    old = TokenSnapshot(token_address="TokA", price=1, volume=50)
    new = TokenSnapshot(token_address="TokA", price=1.0, volume=51)
    assert diff_snapshots(old, new) == {"volume": 51}


def test_source_order_is_not_a_change():
    old = TokenSnapshot(token_address="TokA", sources_used=("jupiter", "dexscreener"))
    same = TokenSnapshot(token_address="TokA", sources_used=("dexscreener", "jupiter"))
    grown = TokenSnapshot(token_address="TokA", sources_used=("dexscreener", "jupiter", "birdeye"))
    assert diff_snapshots(old, same) == {}
    assert diff_snapshots(old, grown) == {"sources_used": ["dexscreener", "jupiter", "birdeye"]}


def test_only_changed_extras_keys_reported():
    old = TokenSnapshot(token_address="TokA", extras={"pair_address": "P1", "chain_id": "solana"})
    new = TokenSnapshot(token_address="TokA", extras={"pair_address": "P2", "chain_id": "solana"})
    assert diff_snapshots(old, new) == {"extras": {"pair_address": "P2"}}


def test_missing_field_in_new_is_not_a_deletion():
    old = TokenSnapshot(token_address="TokA", price=1.0, liquidity=10.0)
    new = TokenSnapshot(token_address="TokA", price=1.0)
    assert diff_snapshots(old, new) == {}


def test_bookkeeping_changes_are_reported_by_diff():
    old = TokenSnapshot(token_address="TokA", price=1.0, updated_at=1)
    new = TokenSnapshot(token_address="TokA", price=1.0, updated_at=2)
    assert diff_snapshots(old, new) == {"updated_at": 2}
