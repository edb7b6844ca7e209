from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pygsds._mqtt import MqttChannelTransport, decode_bus_payload, encode_bus_payload, topic_for
from pygsds.exceptions import GsdsError


def test_bus_payload_shape() -> None:
    payload = encode_bus_payload("ctx-1", {"type": "ctx", "ctx": {"game_id": "G1"}})

    envelope = decode_bus_payload(payload)

    assert envelope.sender == "ctx-1"
    assert envelope.message == {"type": "ctx", "ctx": {"game_id": "G1"}}
    assert topic_for("gsds_ctx") == "gsds/bus/gsds_ctx"


@pytest.mark.parametrize("raw", [b"[]", b'{"sender": 1, "message": {}}', b'{"sender": "a"}'])
def test_malformed_bus_payload_rejected(raw: bytes) -> None:
    with pytest.raises(GsdsError):
        decode_bus_payload(raw)


@pytest.mark.asyncio
async def test_own_messages_are_dropped_and_peers_delivered_on_loop() -> None:
    transport = MqttChannelTransport(
        loop=asyncio.get_running_loop(),
        host="broker.invalid",
        channel="gsds_ctx",
        sender_id="ctx-1",
    )
    got: list[dict[str, Any]] = []
    transport.subscribe(got.append)

    transport.handle_payload(encode_bus_payload("ctx-1", {"n": 1}))
    transport.handle_payload(encode_bus_payload("ctx-2", {"n": 2}))
    transport.handle_payload(b"\xff not json")
    assert got == []  # delivery happens on the loop, not inline

    await asyncio.sleep(0)

    assert got == [{"n": 2}]
    assert transport.topic == "gsds/bus/gsds_ctx"
    assert transport.is_running is False
    transport.publish({"dropped": True})  # not started: logged and ignored
    transport.close()
