"""
Database layer: idempotent SQLite schema for the token store.
"""

from __future__ import annotations

from .migrations import run_migrations

__all__ = ["run_migrations"]
