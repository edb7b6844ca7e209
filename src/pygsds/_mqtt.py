"""MQTT-backed fan-out channel for contexts living in different processes."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pygsds._constants import MQTT_TOPIC_PREFIX
from pygsds.exceptions import GsdsError


@dataclass(frozen=True)
class BusEnvelope:
    """Decoded MQTT bus payload."""

    sender: str
    message: dict[str, Any]


def topic_for(channel: str) -> str:
    return f"{MQTT_TOPIC_PREFIX}/{channel}"


def encode_bus_payload(sender: str, message: dict[str, Any]) -> bytes:
    return json.dumps({"sender": sender, "message": message}, separators=(",", ":")).encode("utf-8")


def decode_bus_payload(payload: bytes) -> BusEnvelope:
    """Parse an MQTT payload published by :func:`encode_bus_payload`."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise GsdsError("MQTT bus payload is not an object")
    sender = parsed.get("sender")
    message = parsed.get("message")
    if not isinstance(sender, str) or not isinstance(message, dict):
        raise GsdsError("MQTT bus payload missing sender/message")
    return BusEnvelope(sender=sender, message=message)


class MqttChannelTransport:
    """Threaded paho-mqtt channel that hands messages to an asyncio loop.

    Every publish is tagged with *sender_id*; the broker echoes our own
    publishes back to us, and those are dropped so the transport never
    loops back, matching the in-process transports.
    """

    loops_back = False

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        host: str,
        channel: str,
        sender_id: str,
        port: int = 1883,
        keepalive: int = 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._host = host
        self._port = port
        self._topic = topic_for(channel)
        self._sender_id = sender_id
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._handlers: list[Callable[[dict[str, Any]], None]] = []

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    @property
    def topic(self) -> str:
        return self._topic

    def start(self) -> None:
        """Connect and subscribe to the channel topic."""
        self.stop()
        self._logger.debug(
            "MQTT bus start requested host=%s port=%s topic=%s sender=%s",
            self._host,
            self._port,
            self._topic,
            self._sender_id,
        )
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=f"gsds-{self._sender_id}",
        )
        client.enable_logger(self._logger)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT bus connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT bus connected, subscribing topic=%s", self._topic)
            c.subscribe(self._topic, qos=0)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_payload(msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT bus disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(self._host, self._port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True

    def stop(self) -> None:
        """Stop and disconnect the client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT bus network loop stopped")

    def publish(self, message: dict[str, Any]) -> None:
        client = self._client
        if client is None:
            self._logger.debug("MQTT bus publish dropped: not started")
            return
        client.publish(self._topic, encode_bus_payload(self._sender_id, message), qos=0)

    def subscribe(self, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        self._handlers.append(handler)

        def _remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _remove

    def close(self) -> None:
        self.stop()
        self._handlers.clear()

    def handle_payload(self, payload: bytes) -> None:
        """Decode a raw payload (paho thread) and schedule delivery on the loop."""
        try:
            envelope = decode_bus_payload(payload)
        except Exception:
            self._logger.debug("MQTT bus payload parse failure", exc_info=True)
            return
        if envelope.sender == self._sender_id:
            return
        self._loop.call_soon_threadsafe(self._dispatch, envelope.message)

    def _dispatch(self, message: dict[str, Any]) -> None:
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                self._logger.debug("MQTT bus handler failed", exc_info=True)
