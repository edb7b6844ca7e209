from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from pygsds._api.context import fetch_server_context, store_server_context
from pygsds._api.periods import fetch_periods
from pygsds._transport import AuthorityTransport
from pygsds.config import GsdsConfig
from pygsds.exceptions import GsdsApiError, GsdsConfigError, GsdsTransportError


class _Authority:
    """Minimal stand-in for the authority's single ``/exec`` endpoint."""

    def __init__(self) -> None:
        self.ctx: dict[str, Any] = {"game_id": "G1", "drive_id": "D1", "play_id": "P1", "ts": 1000}
        self.requests: list[tuple[str, dict[str, str], str, str]] = []
        self.status = 200
        self.body: str | None = None
        self.raw_body: bytes | None = None
        self.delay = 0.0

    async def handle(self, request: web.Request) -> web.Response:
        text = await request.text()
        self.requests.append((request.method, dict(request.query), request.headers.get("content-type", ""), text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raw_body is not None:
            return web.Response(body=self.raw_body, content_type="text/plain")
        if self.status != 200 or self.body is not None:
            return web.Response(status=self.status, text=self.body or "error")
        if request.method == "POST":
            payload = json.loads(text)
            self.ctx = {**self.ctx, **{k: payload[k] for k in ("game_id", "drive_id", "play_id")}, "ts": 2000}
            return web.json_response({"ok": True})
        action = request.query.get("action")
        if action == "ctx_get":
            return web.json_response({"ok": True, "ctx": self.ctx})
        if action == "tryout_periods":
            return web.json_response(
                {"ok": True, "periods": [{"period_code": "AM1", "label": "Warmup", "start_time": "09:00"}]}
            )
        return web.json_response({"ok": False, "error": "unknown action"})


@pytest_asyncio.fixture
async def authority() -> AsyncIterator[tuple[_Authority, str]]:
    state = _Authority()
    app = web.Application()
    app.router.add_route("*", "/exec", state.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield state, str(server.make_url("/exec"))
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_ctx_get_and_set_round_trip(authority: tuple[_Authority, str]) -> None:
    state, url = authority
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url), session)

        ctx = await fetch_server_context(transport)
        assert (ctx.game_id, ctx.ts) == ("G1", 1000)
        assert ctx.raw["game_id"] == "G1"

        await store_server_context(transport, {"tryout_id": "T9", "station_id": "S2", "rep_id": "R3"})
        ctx = await fetch_server_context(transport)

    assert (ctx.game_id, ctx.drive_id, ctx.play_id, ctx.ts) == ("T9", "S2", "R3", 2000)
    method, _query, content_type, body = state.requests[1]
    assert method == "POST"
    assert content_type.startswith("text/plain")
    assert json.loads(body) == {"action": "ctx_set", "game_id": "T9", "drive_id": "S2", "play_id": "R3"}


@pytest.mark.asyncio
async def test_fetch_periods_scopes_by_tryout(authority: tuple[_Authority, str]) -> None:
    state, url = authority
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url), session)
        periods = await fetch_periods(transport, "T1")

    assert [p.title for p in periods] == ["AM1 — Warmup"]
    assert state.requests[0][1] == {"action": "tryout_periods", "tryout_id": "T1"}


@pytest.mark.asyncio
async def test_http_error_raises_transport_error(authority: tuple[_Authority, str]) -> None:
    state, url = authority
    state.status = 503
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url), session)
        with pytest.raises(GsdsTransportError) as excinfo:
            await transport.get_json({"action": "ctx_get"})

    assert excinfo.value.status_code == 503
    assert excinfo.value.endpoint == "ctx_get"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["<html>maintenance</html>", "[1, 2, 3]"])
async def test_non_object_body_raises_transport_error(authority: tuple[_Authority, str], body: str) -> None:
    state, url = authority
    state.body = body
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url), session)
        with pytest.raises(GsdsTransportError):
            await transport.get_json({"action": "ctx_get"})


class _UnknownAction:
    def __init__(self, inner: AuthorityTransport) -> None:
        self._inner = inner

    async def get_json(self, params: Any) -> dict[str, Any]:
        return await self._inner.get_json({"action": "nope"})

    async def post_text(self, payload: Any) -> dict[str, Any]:  # pragma: no cover
        return await self._inner.post_text(payload)


@pytest.mark.asyncio
async def test_rejected_envelope_raises_api_error(authority: tuple[_Authority, str]) -> None:
    _state, url = authority
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url), session)
        with pytest.raises(GsdsApiError):
            await fetch_server_context(_UnknownAction(transport))


@pytest.mark.asyncio
async def test_missing_api_base_raises_config_error() -> None:
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(), session)
        with pytest.raises(GsdsConfigError):
            await transport.get_json({"action": "ctx_get"})


@pytest.mark.asyncio
async def test_undecodable_body_raises_transport_error(authority: tuple[_Authority, str]) -> None:
    state, url = authority
    state.raw_body = b'{"ok":true,"ctx":{"game_id":"\xff\xfe","ts":5}}'
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url), session)
        with pytest.raises(GsdsTransportError) as excinfo:
            await transport.get_json({"action": "ctx_get"})

    assert excinfo.value.endpoint == "ctx_get"


@pytest.mark.asyncio
async def test_slow_authority_raises_transport_error(authority: tuple[_Authority, str]) -> None:
    state, url = authority
    state.delay = 0.3
    async with aiohttp.ClientSession() as session:
        transport = AuthorityTransport(GsdsConfig(api_base=url, request_timeout=0.05), session)
        with pytest.raises(GsdsTransportError, match="timed out"):
            await transport.get_json({"action": "ctx_get"})
