"""Notice surface and cross-context notice dispatch."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from pygsds._constants import DEFAULT_NOTICE_DURATION_MS, HAPTIC_PULSE_MS
from pygsds.bus import FanoutTransport
from pygsds.models.notice import NoticeMessage, dedupe_key

_logger = logging.getLogger(__name__)

Renderer = Callable[[str, bool], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class NoticeBar:
    """Single reusable notice surface.

    Showing a notice while another is visible replaces its text and restarts
    the dismissal timer; notices never stack.  Renderers get
    ``(text, visible)`` on every change.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        haptic: Callable[[int], None] | None = None,
    ) -> None:
        self._loop = loop
        self._haptic = haptic
        self._renderers: list[Renderer] = []
        self._dismiss: asyncio.TimerHandle | None = None
        self.text = ""
        self.visible = False

    def add_renderer(self, renderer: Renderer) -> Callable[[], None]:
        self._renderers.append(renderer)

        def _remove() -> None:
            if renderer in self._renderers:
                self._renderers.remove(renderer)

        return _remove

    def show(self, text: str, duration_ms: int = DEFAULT_NOTICE_DURATION_MS) -> None:
        self.text = text
        self.visible = True
        self._render()

        if self._dismiss is not None:
            self._dismiss.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._dismiss = loop.call_later(max(duration_ms, 0) / 1000.0, self.hide)

        if self._haptic is not None:
            try:
                self._haptic(HAPTIC_PULSE_MS)
            except Exception:
                _logger.debug("Haptic pulse failed", exc_info=True)

    def hide(self) -> None:
        if self._dismiss is not None:
            self._dismiss.cancel()
            self._dismiss = None
        if not self.visible:
            return
        self.visible = False
        self._render()

    def _render(self) -> None:
        for renderer in list(self._renderers):
            try:
                renderer(self.text, self.visible)
            except Exception:
                _logger.debug("Notice renderer failed", exc_info=True)


class NoticeDispatcher:
    """Show notices locally and relay them to the other contexts.

    The bus does not loop a message back to its publisher, so
    :meth:`broadcast` always shows locally first.  Relays are suppressed
    when the same text was already handled by this dispatcher in the same
    second, which keeps a burst of identical timer firings (one per context)
    from flooding the bus.  Two genuinely distinct events with the same text
    in the same second are indistinguishable.
    """

    def __init__(
        self,
        bar: NoticeBar,
        bus: FanoutTransport | None = None,
        *,
        default_duration_ms: int = DEFAULT_NOTICE_DURATION_MS,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._bar = bar
        self._bus = bus
        self._default_duration_ms = default_duration_ms
        self._clock_ms = clock_ms
        self._last_key = ""
        self._detach: Callable[[], None] | None = None
        if bus is not None:
            self._detach = bus.subscribe(self._on_bus_message)

    @property
    def bar(self) -> NoticeBar:
        return self._bar

    def show(self, message: str, duration_ms: int | None = None) -> None:
        self._bar.show(message, self._default_duration_ms if duration_ms is None else duration_ms)

    def broadcast(self, message: str, duration_ms: int | None = None) -> bool:
        """Show *message* here and relay it; returns whether the bus was written."""
        try:
            self.show(message, duration_ms)
        except Exception:
            _logger.debug("Local notice failed", exc_info=True)

        now_ms = self._clock_ms()
        key = dedupe_key(message, now_ms)
        if key == self._last_key:
            return False
        self._last_key = key
        if self._bus is None:
            return False

        notice = NoticeMessage(text=message, ts=now_ms, duration_ms=duration_ms)
        try:
            self._bus.publish(notice.to_bus())
        except Exception:
            _logger.debug("Notice bus publish failed", exc_info=True)
            return False
        _logger.debug("Notice relayed: %s", message)
        return True

    def close(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None
        self._bar.hide()

    def _on_bus_message(self, payload: dict[str, Any]) -> None:
        notice = NoticeMessage.from_bus(payload)
        if notice is None:
            return
        key = dedupe_key(notice.text, self._clock_ms())
        if key == self._last_key:
            return
        self._last_key = key
        self.show(notice.text, notice.duration_ms)
