"""pygsds - replicated focus context and period notifications for game-day tooling."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pygsds")
except PackageNotFoundError:
    __version__ = "0+local"

from pygsds.bus import ChannelTransport, FanoutGroup, FanoutTransport, StorageKeyTransport
from pygsds.client import AppContext
from pygsds.clock import ReferenceClock, parse_time_to_minutes
from pygsds.config import GsdsConfig
from pygsds.exceptions import (
    GsdsApiError,
    GsdsConfigError,
    GsdsError,
    GsdsTransportError,
)
from pygsds.models import (
    CtxGetResponse,
    CtxSetResponse,
    NoticeMessage,
    Period,
    ServerContext,
    format_banner,
)
from pygsds.origin import Origin
from pygsds.scheduler import ArmedTimer, NoticeBar, NoticeDispatcher, PeriodScheduler, TimerOffset
from pygsds.state.events import Provenance
from pygsds.state.store import ContextStore
from pygsds.sync import RemoteSync

__all__ = [
    "__version__",
    "AppContext",
    "ArmedTimer",
    "ChannelTransport",
    "ContextStore",
    "CtxGetResponse",
    "CtxSetResponse",
    "FanoutGroup",
    "FanoutTransport",
    "GsdsApiError",
    "GsdsConfig",
    "GsdsConfigError",
    "GsdsError",
    "GsdsTransportError",
    "NoticeBar",
    "NoticeDispatcher",
    "NoticeMessage",
    "Origin",
    "Period",
    "PeriodScheduler",
    "Provenance",
    "ReferenceClock",
    "RemoteSync",
    "ServerContext",
    "StorageKeyTransport",
    "TimerOffset",
    "format_banner",
    "parse_time_to_minutes",
]
