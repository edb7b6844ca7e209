"""Period scheduling and notice delivery."""

from pygsds.scheduler.notices import NoticeBar, NoticeDispatcher
from pygsds.scheduler.periods import ArmedTimer, PeriodScheduler, TimerOffset, detect_active

__all__ = [
    "ArmedTimer",
    "NoticeBar",
    "NoticeDispatcher",
    "PeriodScheduler",
    "TimerOffset",
    "detect_active",
]
