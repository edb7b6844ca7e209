"""``ctx_get`` / ``ctx_set`` endpoints."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pygsds._constants import ALIAS_PAIRS
from pygsds._transport import Transport
from pygsds.exceptions import GsdsApiError
from pygsds.models.context import CtxGetResponse, CtxSetResponse, ServerContext

CTX_GET = "ctx_get"
CTX_SET = "ctx_set"


def build_ctx_set_payload(record: Mapping[str, Any]) -> dict[str, str]:
    """Build the ``ctx_set`` body.

    The authority only knows the game scheme, so the three identifier
    fields are sent (tryout value first, then game value) and nothing else.
    """
    payload: dict[str, str] = {"action": CTX_SET}
    for tryout_key, game_key in ALIAS_PAIRS:
        payload[game_key] = str(record.get(tryout_key) or record.get(game_key) or "")
    return payload


async def fetch_server_context(transport: Transport) -> ServerContext:
    """Read the authority's record.

    Raises
    ------
    GsdsTransportError
        Network, HTTP or JSON failure.
    GsdsApiError
        ``ok`` is false or no ``ctx`` was returned.
    pydantic.ValidationError
        The envelope has an unexpected shape.
    """
    body = await transport.get_json({"action": CTX_GET})
    response = CtxGetResponse.model_validate(body)
    if not response.ok or response.ctx is None:
        raise GsdsApiError(f"{CTX_GET} returned no context", endpoint=CTX_GET)
    return response.ctx


async def store_server_context(transport: Transport, record: Mapping[str, Any]) -> CtxSetResponse:
    """Write the identifier fields of *record* to the authority."""
    body = await transport.post_text(build_ctx_set_payload(record))
    response = CtxSetResponse.model_validate(body)
    if not response.ok:
        raise GsdsApiError(f"{CTX_SET} rejected: {body.get('error', '')}", endpoint=CTX_SET)
    return response
