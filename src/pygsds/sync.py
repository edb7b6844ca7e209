"""Optional remote authority synchronisation for the context record.

Two loops run independently:

* **push**: every local merge hands its record to :meth:`RemoteSync.schedule_push`;
  a short debounce coalesces bursts (typing) into one ``ctx_set``.
* **pull**: :meth:`RemoteSync.poll_once` runs on an interval and merges the
  authority's record with ``SERVER`` provenance when its ``ts`` is strictly
  newer than the watermark.

The watermark keeps stale or reordered reads from clobbering newer state;
the provenance tag keeps server merges from being pushed back.  A push still
pending when the context shuts down is lost (best effort).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from pydantic import ValidationError

from pygsds._api.context import fetch_server_context, store_server_context
from pygsds._constants import ALIAS_PAIRS, MIN_POLL_MS, UPDATED_AT
from pygsds._transport import Transport
from pygsds.config import GsdsConfig
from pygsds.exceptions import GsdsError
from pygsds.models.context import CtxSetResponse, ServerContext
from pygsds.state.events import Provenance
from pygsds.state.policy import should_apply_server
from pygsds.state.store import ContextStore, Record

_logger = logging.getLogger(__name__)


def clamp_poll_ms(interval_ms: int | float) -> int:
    """Lower-bound the poll interval; garbage becomes the floor."""
    try:
        value = int(interval_ms)
    except (TypeError, ValueError, OverflowError):
        return MIN_POLL_MS
    return max(MIN_POLL_MS, value)


class RemoteSync:
    """Pull/push bridge between one :class:`ContextStore` and the authority."""

    def __init__(
        self,
        config: GsdsConfig,
        transport: Transport,
        store: ContextStore,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._store = store
        self._loop = loop
        self._watermark = 0
        self._push_handle: asyncio.TimerHandle | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def watermark(self) -> int:
        """Highest server ``ts`` applied so far."""
        return self._watermark

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def update_config(self, config: GsdsConfig) -> None:
        self._config = config

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = self._get_loop().create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    # ------------------------------------------------------------------
    # Transport wrappers (never raise)
    # ------------------------------------------------------------------

    async def pull(self) -> ServerContext | None:
        """Read the authority's record; ``None`` on any failure."""
        if not self._config.api_base:
            return None
        try:
            return await fetch_server_context(self._transport)
        except (GsdsError, ValidationError):
            _logger.debug("ctx_get failed", exc_info=True)
            return None

    async def push(self, record: Record) -> CtxSetResponse | None:
        """Write the identifier fields of *record*; ``None`` on any failure."""
        if not self._config.api_base:
            return None
        try:
            return await store_server_context(self._transport, record)
        except (GsdsError, ValidationError):
            _logger.debug("ctx_set failed", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Pull side
    # ------------------------------------------------------------------

    async def poll_once(self) -> bool:
        """Apply the authority's record if it is newer than the watermark."""
        server = await self.pull()
        if server is None or not should_apply_server(server.ts, self._watermark):
            return False

        self._watermark = server.ts
        partial: Record = {}
        for tryout_key, game_key in ALIAS_PAIRS:
            value = getattr(server, game_key)
            partial[game_key] = value
            partial[tryout_key] = value
        partial[UPDATED_AT] = server.ts or int(time.time() * 1000)
        self._store.merge(partial, Provenance.SERVER)
        _logger.debug("Applied server context ts=%s", server.ts)
        return True

    def start_polling(self, interval_ms: int | None = None) -> None:
        """Poll now, then every *interval_ms* (clamped to at least 300 ms)."""
        self.stop_polling()
        interval = clamp_poll_ms(self._config.poll_ms if interval_ms is None else interval_ms)
        self._poll_task = self._get_loop().create_task(self._poll_loop(interval / 1000.0))
        _logger.debug("Server polling started interval_ms=%s", interval)

    def stop_polling(self) -> None:
        """Stop the interval; a pull already dispatched is left to finish."""
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            _logger.debug("Server polling stopped")

    async def _poll_loop(self, interval: float) -> None:
        while True:
            self._spawn(self._safe_poll())
            await asyncio.sleep(interval)

    async def _safe_poll(self) -> None:
        try:
            await self.poll_once()
        except Exception:
            _logger.debug("Server poll failed", exc_info=True)

    # ------------------------------------------------------------------
    # Push side
    # ------------------------------------------------------------------

    def schedule_push(self, record: Record) -> None:
        """Push *record* once no newer local merge has arrived for the debounce window."""
        if self._push_handle is not None:
            self._push_handle.cancel()
        delay = self._config.push_debounce_ms / 1000.0
        self._push_handle = self._get_loop().call_later(delay, self._fire_push, dict(record))

    def _fire_push(self, record: Record) -> None:
        self._push_handle = None
        self._spawn(self.push(record))

    @property
    def push_pending(self) -> bool:
        return self._push_handle is not None

    async def aclose(self) -> None:
        """Stop polling and drop any pending push; wait for in-flight calls."""
        self.stop_polling()
        if self._push_handle is not None:
            self._push_handle.cancel()
            self._push_handle = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
