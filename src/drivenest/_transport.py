"""JSON-over-HTTP transport for the attribution and configuration endpoints."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from drivenest._constants import USER_AGENT
from drivenest._redact import redact_for_log, redact_url
from drivenest.exceptions import TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the gateway.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        ...

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> Any:
        ...


class HttpTransport:
    """aiohttp transport that returns decoded JSON bodies of 200 responses."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float = 30.0) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(self, method: str, url: str, *, content_type: str | None = None, **kwargs: Any) -> Any:
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if content_type:
            headers["content-type"] = content_type
        try:
            async with self._http.request(method, url, headers=headers, timeout=self._timeout, **kwargs) as resp:
                text = await resp.text()
                _logger.debug("%s %s -> %s", method, redact_url(str(resp.url)), resp.status)
                if resp.status != 200:
                    raise TransportError(
                        f"HTTP {resp.status} from {redact_url(url)}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=url,
                    )
        except TransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise TransportError(
                f"Request to {redact_url(url)} failed: {exc!r}",
                endpoint=url,
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {redact_url(url)}: {text[:200]}",
                status_code=200,
                endpoint=url,
            ) from exc

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        return await self._request("GET", url, params=dict(params))

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> Any:
        _logger.debug("POST %s body=%s", url, redact_for_log(payload))
        return await self._request(
            "POST",
            url,
            data=json.dumps(payload, separators=(",", ":")),
            content_type="application/json; charset=UTF-8",
        )
