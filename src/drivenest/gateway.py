"""Attribution gateway.

Endpoints:
  - ``GET  {attribution_url}/id{store_id}?devkey=...&device_id=...``
    (organic-install attribution)
  - ``POST {config_url}`` (content URL resolution)

Both calls are side-effect free apart from the request itself; the
controller decides what to persist.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from drivenest._redact import redact_for_log
from drivenest._transport import Transport
from drivenest.config import LoaderConfig
from drivenest.exceptions import AttributionError, ConfigError, TransportError
from drivenest.models.attribution import AttributionPayload, AttributionSource
from drivenest.models.responses import ContentUrlResponse

_logger = logging.getLogger(__name__)


def _store_id(config: LoaderConfig) -> str:
    """App store id with its ``id`` prefix (``"id123"``), whichever form was configured."""
    store_id = config.store_id.strip()
    if store_id.lower().startswith("id"):
        store_id = store_id[2:]
    return f"id{store_id}"


def _attribution_endpoint(config: LoaderConfig) -> str:
    return f"{config.attribution_url.rstrip('/')}/{_store_id(config)}"


def build_config_request(config: LoaderConfig, payload: AttributionPayload | Mapping[str, Any]) -> dict[str, Any]:
    """Merged attribution payload plus the device/app facts the config server expects.

    Device facts are written last: a stray attribution key named ``os``
    or ``locale`` cannot spoof them.
    """
    body: dict[str, Any] = payload.to_dict() if isinstance(payload, AttributionPayload) else dict(payload)
    body.update(
        {
            "os": config.device.os,
            "af_id": config.device.device_id,
            "bundle_id": config.bundle_id,
            "firebase_project_id": config.firebase_project_id,
            "store_id": _store_id(config),
            "push_token": config.device.push_token,
            "locale": config.locale,
        }
    )
    return body


class AttributionGateway:
    """Outbound calls to the attribution and configuration endpoints."""

    def __init__(self, config: LoaderConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    def with_push_token(self, push_token: str | None) -> AttributionGateway:
        """Gateway variant reporting *push_token* instead of the configured one."""
        if not push_token or push_token == self._config.device.push_token:
            return self
        device = dataclasses.replace(self._config.device, push_token=push_token)
        return AttributionGateway(dataclasses.replace(self._config, device=device), self._transport)

    async def fetch_organic_attribution(
        self,
        deep_link_info: AttributionPayload | Mapping[str, Any] | None = None,
    ) -> AttributionPayload:
        """Fetch install attribution and fold deep-link facts in without overwriting.

        Raises
        ------
        AttributionError
            Non-200 status, transport failure, or a body that is not a JSON object.
        """
        endpoint = _attribution_endpoint(self._config)
        params = {
            "devkey": self._config.dev_key,
            "device_id": self._config.device.device_id,
        }
        try:
            body = await self._transport.get_json(endpoint, params)
        except TransportError as exc:
            raise AttributionError(str(exc), status_code=exc.status_code, endpoint=endpoint) from exc

        if not isinstance(body, dict):
            raise AttributionError(
                f"Attribution response from {endpoint} is not a JSON object",
                status_code=200,
                endpoint=endpoint,
            )
        _logger.debug("Organic attribution: %s", redact_for_log(body))

        payload = AttributionPayload.from_source(AttributionSource.ORGANIC_FETCH, body)
        if deep_link_info:
            payload = payload.merge(deep_link_info)
        return payload

    async def fetch_content_url(self, payload: AttributionPayload | Mapping[str, Any]) -> str:
        """Resolve the content URL for a merged attribution payload.

        Raises
        ------
        ConfigError
            Non-200 status, transport failure, unexpected body shape,
            ``ok`` not ``true``, or a malformed ``url``.
        """
        endpoint = self._config.config_url
        request = build_config_request(self._config, payload)
        try:
            body = await self._transport.post_json(endpoint, request)
        except TransportError as exc:
            raise ConfigError(str(exc), status_code=exc.status_code, endpoint=endpoint) from exc

        try:
            response = ContentUrlResponse.parse(body)
        except ValidationError as exc:
            raise ConfigError(
                f"Unexpected config response from {endpoint}: {redact_for_log(body)!r}",
                status_code=200,
                endpoint=endpoint,
            ) from exc
        _logger.debug("Config endpoint resolved content URL %s", response.url)
        return response.url
