"""Notification bus messages."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


def dedupe_key(text: str, now_ms: int) -> str:
    """Message text plus the one-second window it was handled in."""
    return f"{text}|{now_ms // 1000}"


class NoticeMessage(BaseModel):
    """A notice as carried on the notification bus."""

    model_config = ConfigDict(frozen=True)

    text: str
    ts: int = 0
    duration_ms: int | None = None

    def to_bus(self) -> dict[str, Any]:
        opts: dict[str, Any] = {}
        if self.duration_ms is not None:
            opts["duration"] = self.duration_ms
        return {"ts": self.ts, "msg": self.text, "opts": opts}

    @classmethod
    def from_bus(cls, payload: dict[str, Any]) -> NoticeMessage | None:
        """Parse a bus payload; ``None`` if it carries no message text."""
        text = payload.get("msg")
        if not isinstance(text, str) or not text:
            return None
        opts = payload.get("opts")
        duration = opts.get("duration") if isinstance(opts, dict) else None
        ts = payload.get("ts")
        return cls(
            text=text,
            ts=ts if isinstance(ts, int) and not isinstance(ts, bool) else 0,
            duration_ms=duration if isinstance(duration, int) and not isinstance(duration, bool) else None,
        )
