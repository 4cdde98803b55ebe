"""
Single source for "now" time. Supports deterministic mode for tests via
TOKEN_AGG_DETERMINISTIC_TIME_MS (epoch milliseconds, e.g. 1767225600000).
"""

from __future__ import annotations

import os
import time


def now_ms() -> int:
    """
    Return current UTC time in epoch milliseconds.
    If env TOKEN_AGG_DETERMINISTIC_TIME_MS is set, return that value instead.
    """
    fixed = os.environ.get("TOKEN_AGG_DETERMINISTIC_TIME_MS", "").strip()
    if fixed:
        return int(fixed)
    return int(time.time() * 1000)

