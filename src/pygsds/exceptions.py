"""Custom exception hierarchy for pygsds."""

from __future__ import annotations


class GsdsError(Exception):
    """Base exception for all pygsds errors."""


class GsdsConfigError(GsdsError):
    """Invalid or missing configuration."""


class GsdsTransportError(GsdsError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class GsdsApiError(GsdsError):
    """The authority answered but reported ``ok: false``."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)
