"""Deterministic record policies.

No I/O here: aliasing and watermark rules only.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Any

from pygsds._constants import ALIAS_PAIRS


def apply_aliases(record: dict[str, Any], *, native: Collection[str] = ()) -> dict[str, Any]:
    """Return a copy of *record* where both sides of every aliased pair are equal.

    *native* names the keys the latest writer actually supplied.  A pair whose
    game-side key was written without its tryout-side twin takes the game
    value; otherwise the tryout side wins whenever it is present.  Pairs with
    neither side present are left absent.
    """
    result = dict(record)
    for tryout_key, game_key in ALIAS_PAIRS:
        if game_key in native and tryout_key not in native:
            source = game_key
        elif tryout_key in result:
            source = tryout_key
        elif game_key in result:
            source = game_key
        else:
            continue
        value = result[source]
        result[tryout_key] = value
        result[game_key] = value
    return result


def coerce_timestamp(value: Any) -> int:
    """Best-effort int conversion of a server/local timestamp; 0 if unusable."""
    if value is None or value == "" or isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def should_apply_server(ts: int, watermark: int) -> bool:
    """Server reads apply only when strictly newer than anything applied before."""
    return ts > watermark
