"""Replicated context record store.

This is the only component allowed to mutate the shared record.  Every
mutation goes through :meth:`ContextStore.merge`; peers learn about it via
the durable slot's change events and the local fan-out channel, the remote
authority via the push sink installed by :class:`pygsds.sync.RemoteSync`.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from pygsds._constants import (
    CONTEXT_MESSAGE_TYPE,
    KNOWN_FIELDS,
    STORAGE_KEY,
    UPDATED_AT,
)
from pygsds.bus import FanoutTransport, StorageKeyTransport
from pygsds.origin import LocalStorage
from pygsds.state.events import Provenance
from pygsds.state.policy import apply_aliases, coerce_timestamp

_logger = logging.getLogger(__name__)

Record = dict[str, Any]
Observer = Callable[[Record], None]
PushSink = Callable[[Record], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _clean(value: str | None) -> str:
    return (value or "").strip()


class ContextStore:
    """Last-writer-wins record shared by every context of an origin.

    Parameters
    ----------
    storage
        This context's view of the origin storage area.
    fanout
        Low-latency transport used to tell peers about a write.  The durable
        slot's own change events are always listened to as well.
    key
        Durable slot holding the JSON record.
    clock_ms
        Source of local ``updated_at`` stamps.
    """

    def __init__(
        self,
        storage: LocalStorage,
        *,
        fanout: FanoutTransport | None = None,
        key: str = STORAGE_KEY,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock_ms = clock_ms
        self._fanout = fanout
        self._observers: list[Observer] = []
        self._push_sink: PushSink | None = None

        self._slot = StorageKeyTransport(storage, key)
        self._detach: list[Callable[[], None]] = [self._slot.subscribe(self._notify)]
        if fanout is not None:
            self._detach.append(fanout.subscribe(self._on_fanout))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self) -> Record:
        """Current durable record; ``{}`` when missing or unparsable."""
        raw = self._storage.get_item(self._key)
        if not raw:
            return {}
        try:
            record = json.loads(raw)
        except ValueError:
            _logger.debug("Durable slot %s is not JSON; treating as empty", self._key)
            return {}
        return record if isinstance(record, dict) else {}

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer*; it is called now and on every later change."""
        self._observers.append(observer)
        try:
            observer(self.read())
        except Exception:
            _logger.debug("Context observer failed on subscribe", exc_info=True)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def attach_push_sink(self, sink: PushSink | None) -> None:
        """Install the callback that schedules upstream pushes for local merges."""
        self._push_sink = sink

    def merge(self, partial: Record, provenance: Provenance = Provenance.LOCAL) -> Record:
        """Overlay *partial* on the current record, persist and fan out.

        Local merges are stamped with the local clock (never below the
        current stamp, so ``updated_at`` does not go backwards in this
        context).  Server merges keep the ``updated_at`` the caller derived
        from the authority's ``ts``.
        """
        current = self.read()
        merged = apply_aliases({**current, **partial}, native=partial.keys())

        if provenance is Provenance.SERVER and UPDATED_AT in partial:
            merged[UPDATED_AT] = coerce_timestamp(partial[UPDATED_AT])
        else:
            merged[UPDATED_AT] = max(self._clock_ms(), coerce_timestamp(current.get(UPDATED_AT)))

        self._slot.publish(merged)
        if self._fanout is not None:
            try:
                self._fanout.publish({"type": CONTEXT_MESSAGE_TYPE, "ctx": merged})
            except Exception:
                _logger.debug("Context fan-out publish failed", exc_info=True)
        self._notify(merged)

        if provenance is Provenance.LOCAL and self._push_sink is not None:
            self._push_sink(dict(merged))
        return merged

    def set(self, partial: Record) -> Record:
        return self.merge(partial)

    def clear(self) -> Record:
        """Reset every known field to the empty string."""
        return self.merge({name: "" for name in KNOWN_FIELDS})

    def set_game(self, value: str | None) -> Record:
        return self.merge({"game_id": _clean(value)})

    def set_drive(self, value: str | None) -> Record:
        return self.merge({"drive_id": _clean(value)})

    def set_play(self, value: str | None) -> Record:
        return self.merge({"play_id": _clean(value)})

    def set_tryout_id(self, value: str | None) -> Record:
        return self.merge({"tryout_id": _clean(value)})

    def set_station(self, value: str | None) -> Record:
        return self.merge({"station_id": _clean(value)})

    def set_rep(self, value: str | None) -> Record:
        return self.merge({"rep_id": _clean(value)})

    def set_group(self, value: str | None) -> Record:
        return self.merge({"group_code": _clean(value)})

    def set_period(self, value: str | None) -> Record:
        return self.merge({"period_code": _clean(value)})

    def close(self) -> None:
        """Detach from every transport and drop observers."""
        for detach in self._detach:
            detach()
        self._detach.clear()
        self._slot.close()
        self._observers.clear()
        self._push_sink = None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_fanout(self, message: dict[str, Any]) -> None:
        if message.get("type") != CONTEXT_MESSAGE_TYPE:
            return
        record = message.get("ctx")
        if isinstance(record, dict):
            self._notify(record)

    def _notify(self, record: Record) -> None:
        for observer in list(self._observers):
            try:
                observer(dict(record))
            except Exception:
                _logger.debug("Context observer failed", exc_info=True)
