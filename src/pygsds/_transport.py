"""HTTP transport for the remote authority."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pygsds._constants import USER_AGENT
from pygsds.config import GsdsConfig
from pygsds.exceptions import GsdsConfigError, GsdsTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`AuthorityTransport`) concrete.
    """

    async def get_json(self, params: Mapping[str, str]) -> dict[str, Any]:
        ...

    async def post_text(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        ...


class AuthorityTransport:
    """aiohttp transport speaking the authority's query/plain-text dialect.

    Reads are ``GET {api_base}?action=...``.  Writes are ``POST {api_base}``
    with a JSON document sent as ``text/plain`` so browsers sharing the same
    endpoint never need a CORS preflight.
    """

    def __init__(self, config: GsdsConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def update_config(self, config: GsdsConfig) -> None:
        self._config = config

    def _base_url(self) -> str:
        base = self._config.api_base.strip()
        if not base:
            raise GsdsConfigError("api_base is not set")
        return base

    async def get_json(self, params: Mapping[str, str]) -> dict[str, Any]:
        url = self._base_url()
        endpoint = params.get("action", "")
        _logger.debug("GET %s action=%s", url, endpoint)
        return await self._request("GET", url, endpoint, params=dict(params))

    async def post_text(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        url = self._base_url()
        endpoint = str(payload.get("action", ""))
        _logger.debug("POST %s action=%s", url, endpoint)
        return await self._request(
            "POST",
            url,
            endpoint,
            data=json.dumps(dict(payload), separators=(",", ":")),
            headers={"content-type": "text/plain;charset=utf-8"},
        )

    async def _request(self, method: str, url: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        headers = {"user-agent": USER_AGENT, **kwargs.pop("headers", {})}
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        try:
            async with self._http.request(method, url, headers=headers, timeout=timeout, **kwargs) as resp:
                raw = await resp.read()
                if resp.status < 200 or resp.status >= 300:
                    raise GsdsTransportError(
                        f"HTTP {resp.status} from {endpoint}: {raw[:200].decode('utf-8', 'replace')}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except GsdsTransportError:
            raise
        except TimeoutError as exc:
            raise GsdsTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise GsdsTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            body: Any = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError
            raise GsdsTransportError(
                f"Invalid JSON from {endpoint}: {raw[:200].decode('utf-8', 'replace')}",
                endpoint=endpoint,
            ) from exc

        if not isinstance(body, dict):
            raise GsdsTransportError(
                f"Response from {endpoint} is not a JSON object",
                endpoint=endpoint,
            )
        return body
