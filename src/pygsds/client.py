"""High-level async entry point: one execution context."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

import aiohttp

from pygsds._constants import CONTEXT_CHANNEL, NOTICE_BUS_KEY
from pygsds._mqtt import MqttChannelTransport
from pygsds._transport import AuthorityTransport
from pygsds.bus import ChannelTransport, FanoutGroup, FanoutTransport, StorageKeyTransport
from pygsds.clock import ReferenceClock
from pygsds.config import GsdsConfig
from pygsds.exceptions import GsdsError
from pygsds.models.context import format_banner
from pygsds.origin import Origin, new_context_id
from pygsds.scheduler.notices import NoticeBar, NoticeDispatcher
from pygsds.scheduler.periods import PeriodScheduler
from pygsds.state.store import ContextStore
from pygsds.sync import RemoteSync, clamp_poll_ms

_logger = logging.getLogger(__name__)


class AppContext:
    """Record store, remote sync, notices and period scheduler for one context.

    Usage::

        origin = Origin()
        async with AppContext(config, origin=origin) as ctx:
            ctx.store.set_tryout_id("T-2025")
            ctx.configure(server=True)

    Several instances sharing one :class:`Origin` behave like tabs of one
    browser origin: they see each other's writes and notices.
    """

    def __init__(
        self,
        config: GsdsConfig,
        *,
        origin: Origin | None = None,
        session: aiohttp.ClientSession | None = None,
        notice_bar: NoticeBar | None = None,
        clock: ReferenceClock | None = None,
        context_id: str | None = None,
    ) -> None:
        self._config = config
        self._origin = origin or Origin(config.storage_path)
        self._external_session = session is not None
        self._http_session = session
        self._notice_bar = notice_bar
        self._clock = clock or ReferenceClock(config.time_zone)
        self._context_id = context_id or new_context_id()

        self._transport: AuthorityTransport | None = None
        self._store: ContextStore | None = None
        self._sync: RemoteSync | None = None
        self._dispatcher: NoticeDispatcher | None = None
        self._scheduler: PeriodScheduler | None = None
        self._fanout: FanoutTransport | None = None
        self._notice_bus: FanoutTransport | None = None
        self._mqtt: list[MqttChannelTransport] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AppContext:
        loop = asyncio.get_running_loop()
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = AuthorityTransport(self._config, self._http_session)

        storage = self._origin.local_storage(self._context_id)
        self._fanout = self._with_mqtt(
            ChannelTransport(self._origin.hub.channel(CONTEXT_CHANNEL)),
            CONTEXT_CHANNEL,
            loop,
        )
        self._notice_bus = self._with_mqtt(
            StorageKeyTransport(storage, NOTICE_BUS_KEY),
            NOTICE_BUS_KEY,
            loop,
        )

        self._store = ContextStore(storage, fanout=self._fanout, clock_ms=self._clock.now_ms)
        self._sync = RemoteSync(self._config, self._transport, self._store, loop=loop)

        bar = self._notice_bar or NoticeBar(loop=loop)
        self._dispatcher = NoticeDispatcher(
            bar,
            self._notice_bus,
            default_duration_ms=self._config.notice_duration_ms,
            clock_ms=self._clock.now_ms,
        )
        self._scheduler = PeriodScheduler(
            self._dispatcher,
            clock=self._clock,
            transport=self._transport,
            refresh_seconds=self._config.period_refresh_seconds,
            loop=loop,
        )
        self._scheduler.watch_context(self._store)
        self._scheduler.start()
        self._apply_sync()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._sync is not None:
            await self._sync.aclose()
        if self._dispatcher is not None:
            self._dispatcher.close()
        if self._store is not None:
            self._store.close()
        for transport in (self._fanout, self._notice_bus):
            if transport is not None:
                transport.close()
        self._mqtt.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._scheduler = None
        self._sync = None
        self._dispatcher = None
        self._store = None
        self._fanout = None
        self._notice_bus = None
        self._transport = None

    def _with_mqtt(
        self,
        local: FanoutTransport,
        channel: str,
        loop: asyncio.AbstractEventLoop,
    ) -> FanoutTransport:
        """Add an MQTT leg to *local* when a broker is configured (best effort)."""
        host = self._config.mqtt_host
        if not host:
            return local
        remote = MqttChannelTransport(
            loop=loop,
            host=host,
            port=self._config.mqtt_port,
            channel=channel,
            sender_id=self._context_id,
            keepalive=self._config.mqtt_keepalive,
            logger=_logger,
        )
        try:
            remote.start()
        except Exception:
            _logger.debug("MQTT bus startup failed for %s", channel, exc_info=True)
            return local
        self._mqtt.append(remote)
        return FanoutGroup([local, remote])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def _require(self, value: Any, name: str) -> Any:
        if value is None:
            raise GsdsError(f"{name} not initialized. Use 'async with AppContext(...) as ctx:'")
        return value

    @property
    def config(self) -> GsdsConfig:
        return self._config

    @property
    def context_id(self) -> str:
        return self._context_id

    @property
    def origin(self) -> Origin:
        return self._origin

    @property
    def clock(self) -> ReferenceClock:
        return self._clock

    @property
    def store(self) -> ContextStore:
        store: ContextStore = self._require(self._store, "Store")
        return store

    @property
    def sync(self) -> RemoteSync:
        sync: RemoteSync = self._require(self._sync, "Remote sync")
        return sync

    @property
    def notices(self) -> NoticeDispatcher:
        dispatcher: NoticeDispatcher = self._require(self._dispatcher, "Notice dispatcher")
        return dispatcher

    @property
    def scheduler(self) -> PeriodScheduler:
        scheduler: PeriodScheduler = self._require(self._scheduler, "Scheduler")
        return scheduler

    def banner_text(self, record: dict[str, Any] | None = None) -> str:
        return format_banner(self.store.read() if record is None else record)

    # ------------------------------------------------------------------
    # Runtime configuration
    # ------------------------------------------------------------------

    def configure(
        self,
        *,
        api_base: str | None = None,
        server: bool | None = None,
        poll_ms: int | None = None,
    ) -> dict[str, Any]:
        """Change remote settings at runtime and (re)start or stop polling."""
        changes: dict[str, Any] = {}
        if api_base is not None:
            changes["api_base"] = api_base.strip()
        if server is not None:
            changes["server_sync"] = server
        if poll_ms is not None:
            changes["poll_ms"] = poll_ms
        if changes:
            self._config = dataclasses.replace(self._config, **changes)
        self._apply_sync()
        return {
            "api_base": self._config.api_base,
            "server_sync": self._config.server_sync,
            "poll_ms": self._config.poll_ms,
        }

    def _apply_sync(self) -> None:
        if self._transport is not None:
            self._transport.update_config(self._config)
        sync, store = self._sync, self._store
        if sync is None or store is None:
            return
        sync.update_config(self._config)
        if self._config.remote_enabled:
            store.attach_push_sink(sync.schedule_push)
            sync.start_polling(clamp_poll_ms(self._config.poll_ms))
        else:
            store.attach_push_sink(None)
            sync.stop_polling()
