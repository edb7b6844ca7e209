"""Data models for authority payloads, periods and notices."""

from pygsds.models._base import GsdsBaseModel
from pygsds.models.context import CtxGetResponse, CtxSetResponse, ServerContext, format_banner
from pygsds.models.notice import NoticeMessage, dedupe_key
from pygsds.models.period import Period, parse_period_rows

__all__ = [
    "CtxGetResponse",
    "CtxSetResponse",
    "GsdsBaseModel",
    "NoticeMessage",
    "Period",
    "ServerContext",
    "dedupe_key",
    "format_banner",
    "parse_period_rows",
]
