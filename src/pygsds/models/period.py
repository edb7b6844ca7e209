"""Period dictionary rows."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from pygsds.clock import parse_time_to_minutes


def _first(row: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


class Period(BaseModel):
    """A named recurring time-of-day interval.

    ``start``/``end`` are kept as the strings the dictionary sent; an end
    earlier in the day than the start means the period crosses midnight.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    label: str = ""
    start: str
    end: str = ""

    @classmethod
    def from_row(cls, row: Any) -> Period | None:
        """Build a period from a dictionary row, or ``None`` if it lacks a code or start.

        Accepts ``period_code``/``code``, ``label``/``period_label``,
        ``start_time``/``start``/``start_local`` and
        ``end_time``/``end``/``end_local``.
        """
        if not isinstance(row, dict):
            return None
        code = _first(row, "period_code", "code")
        start = _first(row, "start_time", "start", "start_local")
        if not code or not start:
            return None
        return cls(
            code=code,
            label=_first(row, "label", "period_label") or code,
            start=start,
            end=_first(row, "end_time", "end", "end_local"),
        )

    @property
    def start_minutes(self) -> int | None:
        return parse_time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int | None:
        return parse_time_to_minutes(self.end)

    @property
    def title(self) -> str:
        """``"CODE — Label"`` as used in notice texts."""
        return f"{self.code} — {self.label or self.code}"


def parse_period_rows(payload: Any) -> list[Period]:
    """Extract periods from a ``tryout_periods`` response (``periods`` or ``rows``)."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        rows = payload.get("periods") or payload.get("rows") or []
    else:
        rows = []
    if not isinstance(rows, list):
        return []
    periods: list[Period] = []
    for row in rows:
        period = Period.from_row(row)
        if period is not None:
            periods.append(period)
    return periods
