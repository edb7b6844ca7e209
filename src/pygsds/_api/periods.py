"""``tryout_periods`` dictionary endpoint."""

from __future__ import annotations

from pygsds._transport import Transport
from pygsds.models.period import Period, parse_period_rows

TRYOUT_PERIODS = "tryout_periods"


async def fetch_periods(transport: Transport, tryout_id: str | None = None) -> list[Period]:
    """Fetch and parse the period dictionary, optionally scoped to one tryout."""
    params = {"action": TRYOUT_PERIODS}
    if tryout_id:
        params["tryout_id"] = tryout_id
    body = await transport.get_json(params)
    return parse_period_rows(body)
