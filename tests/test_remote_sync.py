from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import aiohttp
import pytest
from aiohttp import test_utils, web

from pygsds._api.context import build_ctx_set_payload
from pygsds._transport import AuthorityTransport
from pygsds.config import GsdsConfig
from pygsds.exceptions import GsdsTransportError
from pygsds.origin import Origin
from pygsds.state.store import ContextStore
from pygsds.sync import RemoteSync, clamp_poll_ms


class _FakeTransport:
    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.gets: list[dict[str, str]] = []
        self.posts: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None

    async def get_json(self, params: Mapping[str, str]) -> dict[str, Any]:
        self.gets.append(dict(params))
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            raise GsdsTransportError("no response queued", endpoint="ctx_get")
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def post_text(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.posts.append(dict(payload))
        return {"ok": True}


def _config(**kwargs: Any) -> GsdsConfig:
    return GsdsConfig(api_base="https://authority.example/exec", server_sync=True, **kwargs)


def _ctx(ts: int, game: str = "G1", drive: str = "D1", play: str = "P1") -> dict[str, Any]:
    return {"ok": True, "ctx": {"game_id": game, "drive_id": drive, "play_id": play, "ts": ts}}


def _sync(transport: _FakeTransport, **config: Any) -> tuple[RemoteSync, ContextStore]:
    store = ContextStore(Origin().local_storage("a"), clock_ms=lambda: 1)
    sync = RemoteSync(_config(**config), transport, store)
    store.attach_push_sink(sync.schedule_push)
    return sync, store


def test_clamp_poll_ms() -> None:
    assert clamp_poll_ms(10) == 300
    assert clamp_poll_ms(299) == 300
    assert clamp_poll_ms(1000) == 1000
    assert clamp_poll_ms("nope") == 300  # type: ignore[arg-type]


def test_ctx_set_payload_prefers_tryout_values() -> None:
    payload = build_ctx_set_payload(
        {"tryout_id": "T1", "game_id": "G-old", "drive_id": "D1", "rep_id": "", "play_id": "P1", "group_code": "X"}
    )

    assert payload == {"action": "ctx_set", "game_id": "T1", "drive_id": "D1", "play_id": "P1"}


@pytest.mark.asyncio
async def test_newer_server_record_is_applied_without_echo() -> None:
    transport = _FakeTransport([_ctx(100)])
    sync, store = _sync(transport)

    assert await sync.poll_once() is True

    record = store.read()
    assert (record["game_id"], record["tryout_id"]) == ("G1", "G1")
    assert (record["drive_id"], record["station_id"]) == ("D1", "D1")
    assert (record["play_id"], record["rep_id"]) == ("P1", "P1")
    assert record["updated_at"] == 100
    assert sync.watermark == 100
    assert sync.push_pending is False
    assert transport.gets == [{"action": "ctx_get"}]


@pytest.mark.asyncio
async def test_stale_or_equal_server_record_is_ignored() -> None:
    transport = _FakeTransport([_ctx(100, game="G-new"), _ctx(100, game="G-same"), _ctx(90, game="G-old")])
    sync, store = _sync(transport)

    assert await sync.poll_once() is True
    assert await sync.poll_once() is False
    assert await sync.poll_once() is False

    assert store.read()["game_id"] == "G-new"
    assert sync.watermark == 100


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        GsdsTransportError("boom", status_code=500, endpoint="ctx_get"),
        {"ok": False, "error": "sheet locked"},
        {"ok": True},
        {"ok": True, "ctx": "not an object"},
    ],
)
async def test_failed_pull_leaves_record_alone(response: Any) -> None:
    transport = _FakeTransport([response])
    sync, store = _sync(transport)
    store.set_game("local")

    assert await sync.pull() is None
    assert await sync.poll_once() is False
    assert store.read()["game_id"] == "local"
    await sync.aclose()


@pytest.mark.asyncio
async def test_no_remote_calls_without_api_base() -> None:
    transport = _FakeTransport([_ctx(5)])
    store = ContextStore(Origin().local_storage("a"))
    sync = RemoteSync(GsdsConfig(server_sync=True), transport, store)

    assert await sync.pull() is None
    assert await sync.push({"game_id": "G"}) is None
    assert transport.gets == []
    assert transport.posts == []


@pytest.mark.asyncio
async def test_burst_of_local_edits_is_pushed_once() -> None:
    transport = _FakeTransport()
    sync, store = _sync(transport, push_debounce_ms=20)

    store.set_rep("1")
    store.set_rep("12")
    store.set_rep("123")
    assert sync.push_pending is True
    await asyncio.sleep(0.1)

    assert transport.posts == [{"action": "ctx_set", "game_id": "", "drive_id": "", "play_id": "123"}]
    assert sync.push_pending is False
    await sync.aclose()


@pytest.mark.asyncio
async def test_aclose_drops_pending_push() -> None:
    transport = _FakeTransport()
    sync, store = _sync(transport, push_debounce_ms=50)

    store.set_game("G1")
    await sync.aclose()
    await asyncio.sleep(0.08)

    assert transport.posts == []


@pytest.mark.asyncio
async def test_polling_runs_immediately_then_on_interval() -> None:
    transport = _FakeTransport([_ctx(1)])
    sync, _store = _sync(transport)

    sync.start_polling(10)  # clamped to 300 ms
    await asyncio.sleep(0.05)
    assert sync.is_polling
    assert len(transport.gets) == 1

    await asyncio.sleep(0.3)
    assert len(transport.gets) == 2

    sync.stop_polling()
    assert not sync.is_polling
    await sync.aclose()


@pytest.mark.asyncio
async def test_stop_polling_lets_inflight_pull_finish() -> None:
    transport = _FakeTransport([_ctx(50, game="late")])
    transport.gate = asyncio.Event()
    sync, store = _sync(transport)

    sync.start_polling(1000)
    await asyncio.sleep(0.01)
    sync.stop_polling()
    transport.gate.set()
    await asyncio.sleep(0.01)

    assert store.read()["game_id"] == "late"
    await sync.aclose()


async def _serve(handler: Any) -> test_utils.TestServer:
    app = web.Application()
    app.router.add_route("*", "/exec", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_undecodable_authority_reply_is_a_failed_pull_and_push() -> None:
    async def handler(_request: web.Request) -> web.Response:
        return web.Response(body=b'{"ok":true,"ctx":{"game_id":"\xff\xfe","ts":5}}', content_type="text/plain")

    server = await _serve(handler)
    try:
        async with aiohttp.ClientSession() as session:
            config = GsdsConfig(api_base=str(server.make_url("/exec")), server_sync=True)
            store = ContextStore(Origin().local_storage("a"))
            sync = RemoteSync(config, AuthorityTransport(config, session), store)

            assert await sync.pull() is None
            assert await sync.poll_once() is False
            assert await sync.push({"game_id": "G1"}) is None
            assert store.read() == {}
            assert sync.watermark == 0
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_authority_slower_than_request_timeout_is_a_failed_pull() -> None:
    async def handler(_request: web.Request) -> web.Response:
        await asyncio.sleep(0.3)
        return web.json_response({"ok": True, "ctx": {"game_id": "late", "ts": 9}})

    server = await _serve(handler)
    try:
        async with aiohttp.ClientSession() as session:
            config = GsdsConfig(api_base=str(server.make_url("/exec")), server_sync=True, request_timeout=0.05)
            store = ContextStore(Origin().local_storage("a"))
            sync = RemoteSync(config, AuthorityTransport(config, session), store)

            assert await sync.pull() is None
            assert await sync.push({"game_id": "G1"}) is None
            assert store.read() == {}
    finally:
        await server.close()
