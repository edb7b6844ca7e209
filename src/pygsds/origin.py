"""Origin-scoped primitives shared by every execution context.

An *origin* is a set of contexts (application instances, each owning one
event loop) that share:

* a :class:`StorageArea` of durable string slots, optionally persisted to a
  JSON file, and
* a :class:`BroadcastHub` of named channels.

Both deliver to every attached context **except the writer**: a context that
sets a slot or posts a message never hears its own change back.  Callers that
need to react locally (the record store, the notice dispatcher) do so
directly before publishing.
"""

from __future__ import annotations

import copy
import itertools
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_logger = logging.getLogger(__name__)

_context_ids = itertools.count(1)


def new_context_id() -> str:
    """Process-unique identifier for one execution context."""
    return f"ctx-{next(_context_ids)}"


@dataclass(frozen=True)
class StorageEvent:
    """Change notification for a durable slot."""

    key: str
    old_value: str | None
    new_value: str | None


StorageListener = Callable[[StorageEvent], None]


class StorageArea:
    """Durable key/value slots shared by every context of an origin.

    When *path* is given the slots are loaded from and written through to a
    JSON object file.  An unreadable file starts the area empty.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._mtime_ns: int | None = None
        self._items: dict[str, str] = self._load(path)
        self._mtime_ns = self._stat()
        self._listeners: list[tuple[str, StorageListener]] = []

    @staticmethod
    def _load(path: Path | None) -> dict[str, str]:
        if path is None or not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.debug("Ignoring unreadable storage file %s", path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _stat(self) -> int | None:
        if self._path is None:
            return None
        try:
            return self._path.stat().st_mtime_ns
        except OSError:
            return None

    def _refresh(self) -> None:
        """Reload when another process rewrote the file."""
        if self._path is None:
            return
        mtime = self._stat()
        if mtime is not None and mtime != self._mtime_ns:
            self._items = self._load(self._path)
            self._mtime_ns = mtime

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._items, separators=(",", ":")), encoding="utf-8")
        tmp.replace(self._path)
        self._mtime_ns = self._stat()

    def get_item(self, key: str) -> str | None:
        self._refresh()
        return self._items.get(key)

    def set_item(self, key: str, value: str, *, writer: str) -> None:
        self._refresh()
        old = self._items.get(key)
        self._items[key] = value
        self._flush()
        self._dispatch(StorageEvent(key=key, old_value=old, new_value=value), writer)

    def remove_item(self, key: str, *, writer: str) -> None:
        if key not in self._items:
            return
        old = self._items.pop(key)
        self._flush()
        self._dispatch(StorageEvent(key=key, old_value=old, new_value=None), writer)

    def add_listener(self, owner: str, listener: StorageListener) -> Callable[[], None]:
        entry = (owner, listener)
        self._listeners.append(entry)

        def _remove() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _remove

    def _dispatch(self, event: StorageEvent, writer: str) -> None:
        for owner, listener in list(self._listeners):
            if owner == writer:
                continue
            try:
                listener(event)
            except Exception:
                _logger.debug("Storage listener failed for key=%s", event.key, exc_info=True)


class LocalStorage:
    """One context's view of a :class:`StorageArea`."""

    def __init__(self, area: StorageArea, owner: str) -> None:
        self._area = area
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def get_item(self, key: str) -> str | None:
        return self._area.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self._area.set_item(key, value, writer=self._owner)

    def remove_item(self, key: str) -> None:
        self._area.remove_item(key, writer=self._owner)

    def on_change(self, listener: StorageListener) -> Callable[[], None]:
        """Listen for changes written by *other* contexts."""
        return self._area.add_listener(self._owner, listener)


class BroadcastHub:
    """Registry of open channels, grouped by name."""

    def __init__(self) -> None:
        self._channels: dict[str, list[BroadcastChannel]] = {}

    def channel(self, name: str) -> BroadcastChannel:
        chan = BroadcastChannel(self, name)
        self._channels.setdefault(name, []).append(chan)
        return chan

    def _detach(self, chan: BroadcastChannel) -> None:
        members = self._channels.get(chan.name)
        if members is None:
            return
        if chan in members:
            members.remove(chan)
        if not members:
            self._channels.pop(chan.name, None)

    def _deliver(self, sender: BroadcastChannel, data: Any) -> None:
        for chan in list(self._channels.get(sender.name, [])):
            if chan is sender:
                continue
            chan._receive(copy.deepcopy(data))


class BroadcastChannel:
    """Named channel; messages reach every other open instance of the name."""

    def __init__(self, hub: BroadcastHub, name: str) -> None:
        self._hub = hub
        self.name = name
        self._handlers: list[Callable[[Any], None]] = []
        self._closed = False

    def post_message(self, data: Any) -> None:
        if self._closed:
            return
        self._hub._deliver(self, data)

    def add_handler(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        self._handlers.append(handler)

        def _remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _remove

    def close(self) -> None:
        self._closed = True
        self._handlers.clear()
        self._hub._detach(self)

    def _receive(self, data: Any) -> None:
        for handler in list(self._handlers):
            try:
                handler(data)
            except Exception:
                _logger.debug("Channel handler failed on %s", self.name, exc_info=True)


class Origin:
    """Storage area plus broadcast hub shared by a group of contexts."""

    def __init__(self, storage_path: Path | None = None) -> None:
        self.storage = StorageArea(storage_path)
        self.hub = BroadcastHub()

    def local_storage(self, owner: str) -> LocalStorage:
        return LocalStorage(self.storage, owner)
