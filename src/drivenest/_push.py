"""Push payload listener over MQTT."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from drivenest._redact import redact_for_log
from drivenest.exceptions import DriveNestError


@dataclass(frozen=True)
class PushEndpoint:
    """Broker and topic the push listener subscribes to."""

    host: str
    port: int
    topic: str
    client_id: str
    tls: bool = True


def parse_broker(raw_broker: str, *, default_port: int = 8883) -> tuple[str, int]:
    value = raw_broker.strip()
    if not value:
        raise ValueError("Broker value is empty")

    if "://" in value:
        value = value.split("://", 1)[1]
    if "/" in value:
        value = value.split("/", 1)[0]

    host, _, maybe_port = value.rpartition(":")
    if host and maybe_port.isdigit():
        return host, int(maybe_port)
    return value, default_port


def decode_push_payload(payload: bytes) -> dict[str, Any]:
    """Decode an MQTT message body into a push payload object.

    Raises :class:`DriveNestError` for non-JSON or non-object bodies.
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DriveNestError(f"Push payload is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise DriveNestError("Push payload decoded to non-object JSON")
    return parsed


class PushRuntime:
    """Threaded paho-mqtt runtime that emits push payloads onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_payload: Callable[[dict[str, Any]], None],
        keepalive: int = 120,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_payload = on_payload
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topic: str | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Decode one message and hand it to the loop; malformed bodies are dropped."""
        try:
            parsed = decode_push_payload(payload)
        except DriveNestError:
            self._logger.debug("Dropping malformed push payload on %s", topic, exc_info=True)
            return
        self._logger.debug("Push payload topic=%s parsed=%s", topic, redact_for_log(parsed))
        self._loop.call_soon_threadsafe(self._on_payload, parsed)

    def start(self, endpoint: PushEndpoint) -> None:
        """Connect and subscribe to the push topic."""
        self.stop()
        self._logger.debug(
            "Push runtime start host=%s port=%s topic=%s",
            endpoint.host,
            endpoint.port,
            endpoint.topic,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=endpoint.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if endpoint.tls:
            client.tls_set()

        self._topic = endpoint.topic

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("Push broker connect failed: %s", reason_code)
                return
            if self._topic:
                c.subscribe(self._topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_message(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("Push broker disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(endpoint.host, endpoint.port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True

    def stop(self) -> None:
        """Disconnect and stop the network loop if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._topic = None

        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
