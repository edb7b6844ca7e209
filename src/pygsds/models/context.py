"""Remote authority context payloads."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from pygsds.models._base import GsdsBaseModel
from pygsds.state.policy import coerce_timestamp


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


class ServerContext(GsdsBaseModel):
    """The authority's copy of the record (game scheme only)."""

    game_id: str = ""
    drive_id: str = ""
    play_id: str = ""
    ts: int = 0

    @field_validator("game_id", "drive_id", "play_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return _as_str(value)

    @field_validator("ts", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> int:
        return coerce_timestamp(value)


class CtxGetResponse(GsdsBaseModel):
    """``action=ctx_get`` response envelope."""

    ok: bool = False
    ctx: ServerContext | None = None


class CtxSetResponse(GsdsBaseModel):
    """``action=ctx_set`` acknowledgement."""

    ok: bool = False


def format_banner(record: dict[str, Any]) -> str:
    """One-line summary of a context record for status displays."""
    tryout_parts = [
        ("Tryout", record.get("tryout_id")),
        ("Period", record.get("period_code")),
        ("Group", record.get("group_code")),
        ("Station", record.get("station_id")),
        ("Rep", record.get("rep_id")),
    ]
    if any(value for _, value in tryout_parts):
        return " • ".join(f"{name}: {value}" for name, value in tryout_parts if value)

    game_parts = [
        ("Game", record.get("game_id")),
        ("Drive", record.get("drive_id")),
        ("Play", record.get("play_id")),
    ]
    if any(value for _, value in game_parts):
        return " • ".join(f"{name}: {value}" for name, value in game_parts if value)
    return "No context set"
