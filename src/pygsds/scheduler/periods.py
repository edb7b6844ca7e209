"""Time-of-day period scheduler.

For every period the scheduler arms three one-shot timers relative to the
next occurrence of its start time: five minutes before, one minute before,
and at the start.  One extra timer fires just after the next reference
midnight and rebuilds the whole pass for the following day.  Every rebuild
cancels all handles of the previous pass first, so an old pass can never
fire alongside a new one.  Periods whose start or end does not parse are
skipped.

Independently, :meth:`PeriodScheduler.check_transition` compares the period
active "now" with the last one announced and emits a "Now in ..." notice
when it changes.  Checking again without a change is a no-op, so it runs at
every :00 and :30 second mark of the reference clock: the :30 run picks up
period lists replaced since the previous check, the :00 run lands on the top
of each minute.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from pygsds._api.periods import fetch_periods
from pygsds._constants import (
    DEFAULT_PERIOD_REFRESH_SECONDS,
    PERIOD_REFRESH_DEBOUNCE_SECONDS,
    VISIBILITY_CHECK_DELAY_SECONDS,
)
from pygsds._transport import Transport
from pygsds.clock import ReferenceClock, seconds_until
from pygsds.exceptions import GsdsError
from pygsds.models.period import Period
from pygsds.scheduler.notices import NoticeDispatcher
from pygsds.state.store import ContextStore, Record

_logger = logging.getLogger(__name__)

_CHECK_EVERY_SECONDS = 30


class TimerOffset(StrEnum):
    WARN_5 = "-5min"
    WARN_1 = "-1min"
    START = "start"
    REARM = "rearm"


# (offset, seconds before start, phrase used in the warning text)
_PERIOD_OFFSETS: tuple[tuple[TimerOffset, int, str], ...] = (
    (TimerOffset.WARN_5, 5 * 60, "5 minutes"),
    (TimerOffset.WARN_1, 60, "1 minute"),
    (TimerOffset.START, 0, ""),
)


@dataclass
class ArmedTimer:
    """One armed firing owned by the scheduler."""

    offset: TimerOffset
    fire_at: datetime
    period: Period | None = None
    handle: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()


def detect_active(periods: Iterable[Period], now_minutes: int) -> Period | None:
    """First period whose inclusive interval contains *now_minutes*.

    ``end < start`` wraps past midnight.  Periods with an unparsable start
    or end are skipped.
    """
    for period in periods:
        start = period.start_minutes
        end = period.end_minutes
        if start is None or end is None:
            continue
        if end < start:
            if now_minutes >= start or now_minutes <= end:
                return period
        elif start <= now_minutes <= end:
            return period
    return None


def warning_text(period: Period, phrase: str) -> str:
    return f"{period.title} starts in {phrase}"


def entering_text(period: Period) -> str:
    return f"Now entering {period.title}"


def transition_text(period: Period) -> str:
    return f"Now in {period.title}"


class PeriodScheduler:
    """Arms period notices and tracks the active period for one context."""

    def __init__(
        self,
        dispatcher: NoticeDispatcher,
        *,
        clock: ReferenceClock,
        transport: Transport | None = None,
        refresh_seconds: float = DEFAULT_PERIOD_REFRESH_SECONDS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._clock = clock
        self._transport = transport
        self._refresh_seconds = refresh_seconds
        self._loop = loop

        self._periods: list[Period] = []
        self._armed: list[ArmedTimer] = []
        self._active: Period | None = None

        self._store: ContextStore | None = None
        self._unwatch: Callable[[], None] | None = None
        self._watched_tryout: str | None = None
        self._refresh_handle: asyncio.TimerHandle | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._inflight: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def periods(self) -> tuple[Period, ...]:
        return tuple(self._periods)

    @property
    def armed(self) -> tuple[ArmedTimer, ...]:
        return tuple(self._armed)

    @property
    def active(self) -> Period | None:
        """Last period announced (or silently recorded) as active."""
        return self._active

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
    # Scheduling
    # ------------------------------------------------------------------

    def clear_timers(self) -> None:
        """Cancel every handle of the current pass."""
        for timer in self._armed:
            timer.cancel()
        self._armed.clear()

    def schedule(self, periods: Sequence[Period] | None = None) -> None:
        """Rebuild the timer pass, optionally replacing the period list first."""
        self.clear_timers()
        if periods is not None:
            self._periods = list(periods)

        now = self._clock.now()
        for period in self._periods:
            start = self._clock.next_occurrence(period.start, now)
            if start is None or period.end_minutes is None:
                _logger.debug(
                    "Skipping period %s: unparsable start %r or end %r",
                    period.code,
                    period.start,
                    period.end,
                )
                continue
            start_utc = start.astimezone(UTC)
            for offset, lead_seconds, phrase in _PERIOD_OFFSETS:
                fire_at = (start_utc - timedelta(seconds=lead_seconds)).astimezone(self._clock.tz)
                delay = seconds_until(fire_at, now)
                if delay <= 0:
                    continue
                self._arm(ArmedTimer(offset=offset, fire_at=fire_at, period=period), delay, phrase)

        midnight = self._clock.next_midnight(now)
        delay = seconds_until(midnight, now)
        if delay > 0:
            self._arm(ArmedTimer(offset=TimerOffset.REARM, fire_at=midnight), delay, "")
        _logger.debug("Scheduled %d timers for %d periods", len(self._armed), len(self._periods))

    def _arm(self, timer: ArmedTimer, delay: float, phrase: str) -> None:
        timer.handle = self._get_loop().call_later(delay, self._fire, timer, phrase)
        self._armed.append(timer)

    def _fire(self, timer: ArmedTimer, phrase: str) -> None:
        if timer in self._armed:
            self._armed.remove(timer)

        if timer.offset is TimerOffset.REARM:
            self.schedule()
            return

        period = timer.period
        if period is None:
            return
        if timer.offset is TimerOffset.START:
            self._dispatcher.broadcast(entering_text(period))
            self._active = period
        else:
            self._dispatcher.broadcast(warning_text(period, phrase))

    # ------------------------------------------------------------------
    # Active period
    # ------------------------------------------------------------------

    def detect_active(
        self,
        periods: Iterable[Period] | None = None,
        now: datetime | None = None,
    ) -> Period | None:
        minutes = self._clock.minutes_of_day(now)
        return detect_active(self._periods if periods is None else periods, minutes)

    def check_transition(self) -> bool:
        """Announce a change of active period; returns whether a notice went out."""
        active = self.detect_active(now=self._clock.now())
        if active is None:
            self._active = None
            return False
        if self._active is not None and self._active.code == active.code:
            return False
        self._dispatcher.broadcast(transition_text(active))
        self._active = active
        return True

    # ------------------------------------------------------------------
    # Period dictionary
    # ------------------------------------------------------------------

    async def refresh_from_dictionary(self) -> list[Period]:
        """Reload periods from the dictionary; the previous list survives a failure."""
        if self._transport is None:
            return list(self._periods)
        tryout_id = None
        if self._store is not None:
            value = self._store.read().get("tryout_id")
            tryout_id = value if isinstance(value, str) and value else None
        try:
            periods = await fetch_periods(self._transport, tryout_id)
        except (GsdsError, ValidationError):
            _logger.debug("Period dictionary refresh failed", exc_info=True)
            return list(self._periods)

        self._periods = periods
        self.schedule()
        self._active = self.detect_active()
        return list(periods)

    def watch_context(self, store: ContextStore) -> None:
        """Refresh (debounced) whenever the record's ``tryout_id`` changes."""
        self.unwatch_context()
        self._store = store
        self._unwatch = store.subscribe(self._on_context)

    def unwatch_context(self) -> None:
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        self._store = None
        self._watched_tryout = None

    def _on_context(self, record: Record) -> None:
        tryout_id = record.get("tryout_id")
        if not isinstance(tryout_id, str) or tryout_id == self._watched_tryout:
            return
        self._watched_tryout = tryout_id
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
        self._refresh_handle = self._get_loop().call_later(
            PERIOD_REFRESH_DEBOUNCE_SECONDS,
            self._debounced_refresh,
        )

    def _debounced_refresh(self) -> None:
        self._refresh_handle = None
        self._spawn(self._safe_refresh())

    async def _safe_refresh(self) -> None:
        try:
            await self.refresh_from_dictionary()
        except Exception:
            _logger.debug("Period refresh task failed", exc_info=True)

    def on_visibility_regained(self) -> None:
        """Refresh now and re-check the active period shortly after."""
        self._spawn(self._safe_refresh())
        self._get_loop().call_later(VISIBILITY_CHECK_DELAY_SECONDS, self.check_transition)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the dictionary refresh and transition check loops."""
        if self._tasks:
            return
        loop = self._get_loop()
        self._tasks = [
            loop.create_task(self._refresh_loop()),
            loop.create_task(self._transition_loop()),
        ]

    async def stop(self) -> None:
        """Cancel loops, pending refreshes and every armed timer."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None
        self.unwatch_context()
        self.clear_timers()
        pending = [*tasks, *self._inflight]
        for task in self._inflight:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _refresh_loop(self) -> None:
        while True:
            await self._safe_refresh()
            await asyncio.sleep(self._refresh_seconds)

    def _seconds_to_next_check(self) -> float:
        now = self._clock.now()
        into = (now.second % _CHECK_EVERY_SECONDS) + now.microsecond / 1_000_000
        return _CHECK_EVERY_SECONDS - into

    async def _transition_loop(self) -> None:
        while True:
            await asyncio.sleep(self._seconds_to_next_check())
            try:
                self.check_transition()
            except Exception:
                _logger.debug("Transition check failed", exc_info=True)
