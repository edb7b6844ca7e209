"""Fan-out transports behind one publish/subscribe interface.

Two in-process transports cover the same-origin case:

* :class:`ChannelTransport` posts on a named broadcast channel.  Low latency,
  nothing is persisted.
* :class:`StorageKeyTransport` writes a JSON document into a durable slot and
  listens for slot change events.  The last message survives restarts.

Neither delivers a message back to the context that published it.  Code that
must react in the publishing context (the record store notifying its own
subscribers, the dispatcher showing its own notice) does so itself; relying
on the transport for that would either miss the local update or, with a
looping transport, fire it twice.  :class:`pygsds._mqtt.MqttChannelTransport`
keeps the same property for the cross-process case by dropping its own
messages.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from pygsds.origin import BroadcastChannel, LocalStorage, StorageEvent

_logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict[str, Any]], None]


class FanoutTransport(Protocol):
    """Structural interface shared by every fan-out transport."""

    #: ``True`` if :meth:`publish` also reaches the publisher's own handlers.
    loops_back: bool

    def publish(self, message: dict[str, Any]) -> None:
        ...

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        ...

    def close(self) -> None:
        ...


class _HandlerSet:
    def __init__(self, name: str) -> None:
        self._name = name
        self._handlers: list[MessageHandler] = []

    def add(self, handler: MessageHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _remove

    def clear(self) -> None:
        self._handlers.clear()

    def dispatch(self, message: dict[str, Any]) -> None:
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                _logger.debug("Fan-out handler failed on %s", self._name, exc_info=True)


class ChannelTransport:
    """Broadcast-channel transport."""

    loops_back = False

    def __init__(self, channel: BroadcastChannel) -> None:
        self._channel = channel
        self._handlers = _HandlerSet(channel.name)
        self._detach = channel.add_handler(self._on_message)

    def publish(self, message: dict[str, Any]) -> None:
        self._channel.post_message(message)

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        return self._handlers.add(handler)

    def close(self) -> None:
        self._detach()
        self._handlers.clear()
        self._channel.close()

    def _on_message(self, data: Any) -> None:
        if isinstance(data, dict):
            self._handlers.dispatch(data)


class StorageKeyTransport:
    """Durable-slot transport: publish writes the slot, peers get change events."""

    loops_back = False

    def __init__(self, storage: LocalStorage, key: str) -> None:
        self._storage = storage
        self._key = key
        self._handlers = _HandlerSet(key)
        self._detach = storage.on_change(self._on_storage)

    @property
    def key(self) -> str:
        return self._key

    def publish(self, message: dict[str, Any]) -> None:
        self._storage.set_item(self._key, json.dumps(message, separators=(",", ":")))

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        return self._handlers.add(handler)

    def close(self) -> None:
        self._detach()
        self._handlers.clear()

    def _on_storage(self, event: StorageEvent) -> None:
        if event.key != self._key or not event.new_value:
            return
        try:
            message = json.loads(event.new_value)
        except ValueError:
            _logger.debug("Ignoring non-JSON value in slot %s", self._key)
            return
        if isinstance(message, dict):
            self._handlers.dispatch(message)


class FanoutGroup:
    """Several transports behaving as one (e.g. in-process channel plus MQTT)."""

    loops_back = False

    def __init__(self, transports: list[FanoutTransport]) -> None:
        self._transports = list(transports)

    def publish(self, message: dict[str, Any]) -> None:
        for transport in self._transports:
            try:
                transport.publish(message)
            except Exception:
                _logger.debug("Fan-out publish failed on %r", transport, exc_info=True)

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        detachers = [transport.subscribe(handler) for transport in self._transports]

        def _remove() -> None:
            for detach in detachers:
                detach()

        return _remove

    def close(self) -> None:
        for transport in self._transports:
            transport.close()
