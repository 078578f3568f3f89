"""High-level async facade wiring the loader components together."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from drivenest._push import PushEndpoint, PushRuntime, parse_broker
from drivenest._transport import HttpTransport, Transport
from drivenest.config import LoaderConfig
from drivenest.connectivity import ConnectivityMonitor, tcp_probe
from drivenest.content_host import ContentHost, ContentHostSession
from drivenest.controller import DriveController
from drivenest.exceptions import DriveNestError
from drivenest.gateway import AttributionGateway
from drivenest.models.phase import DrivePhase, DriveSnapshot
from drivenest.state.store import ConfigStore, KeyValueStore

_logger = logging.getLogger(__name__)


class ContentLoader:
    """Attribution-gated content loader.

    Usage::

        async with ContentLoader(LoaderConfig.from_env(), JsonFileStore(path)) as loader:
            loader.on_attribution(conversion_data)
            snapshot = await loader.wait_until_settled()

    SDK callbacks may be forwarded from any thread with the ``*_threadsafe``
    variants; the plain ones must run on the loader's event loop.
    """

    def __init__(
        self,
        config: LoaderConfig,
        store: KeyValueStore,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        content_host: ContentHost | None = None,
        open_external: Callable[[str], None] | None = None,
        monitor: ConnectivityMonitor | None = None,
    ) -> None:
        self._config = config
        self._store = ConfigStore(store)
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._content_host = content_host
        self._open_external = open_external
        self._monitor = monitor
        self._loop: asyncio.AbstractEventLoop | None = None
        self._controller: DriveController | None = None
        self._host_session: ContentHostSession | None = None
        self._push_runtime: PushRuntime | None = None
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ContentLoader:
        self._loop = asyncio.get_running_loop()
        transport = self._transport
        if transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = HttpTransport(self._http_session, timeout=self._config.request_timeout)

        monitor = self._monitor
        if monitor is None and self._config.connectivity_enabled:
            monitor = ConnectivityMonitor(
                tcp_probe(self._config.connectivity_host, self._config.connectivity_port),
                interval=self._config.connectivity_interval,
            )

        controller = DriveController(
            self._config,
            AttributionGateway(self._config, transport),
            self._store,
            monitor=monitor,
        )
        if self._content_host is not None:
            self._host_session = ContentHostSession(
                self._content_host,
                self._store,
                redirect_limit=self._config.redirect_limit,
                open_external=self._open_external,
            )
            self._unsubscribe = controller.subscribe(self._host_session.follow)

        self._controller = controller
        await controller.start()
        await self._start_push()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._stop_push()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._controller is not None:
            await self._controller.stop()
            self._controller = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._host_session = None
        self._loop = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def controller(self) -> DriveController:
        if self._controller is None:
            raise DriveNestError("Loader not started. Use 'async with ContentLoader(...) as loader:'")
        return self._controller

    @property
    def content_host(self) -> ContentHostSession | None:
        return self._host_session

    @property
    def snapshot(self) -> DriveSnapshot:
        return self.controller.snapshot

    @property
    def config_store(self) -> ConfigStore:
        return self._store

    # ------------------------------------------------------------------
    # SDK callbacks
    # ------------------------------------------------------------------

    def on_attribution(self, data: Mapping[str, Any]) -> None:
        self.controller.attribution_received(data)

    def on_deep_link(self, data: Mapping[str, Any]) -> None:
        self.controller.deep_link_resolved(data)

    def on_push(self, data: Mapping[str, Any]) -> None:
        self.controller.push_received(data)

    def answer_permission(self, granted: bool, *, system_denied: bool = False) -> None:
        self.controller.answer_permission(granted, system_denied=system_denied)

    def on_attribution_threadsafe(self, data: Mapping[str, Any]) -> None:
        self._call_threadsafe(self.on_attribution, dict(data))

    def on_deep_link_threadsafe(self, data: Mapping[str, Any]) -> None:
        self._call_threadsafe(self.on_deep_link, dict(data))

    def on_push_threadsafe(self, data: Mapping[str, Any]) -> None:
        self._call_threadsafe(self.on_push, dict(data))

    async def wait_until_settled(self, timeout: float | None = None) -> DriveSnapshot:
        """Wait for the first phase other than ignition, or for a permission prompt."""
        return await self.controller.wait_for(
            lambda s: s.phase is not DrivePhase.IGNITION or s.awaiting_permission,
            timeout,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _call_threadsafe(self, fn: Callable[[dict[str, Any]], None], data: dict[str, Any]) -> None:
        if self._loop is None:
            raise DriveNestError("Loader not started")
        self._loop.call_soon_threadsafe(fn, data)

    async def _start_push(self) -> None:
        if not self._config.push_broker:
            return
        assert self._loop is not None  # noqa: S101
        try:
            host, port = parse_broker(self._config.push_broker)
        except ValueError:
            _logger.warning("Ignoring invalid push broker %r", self._config.push_broker)
            return
        endpoint = PushEndpoint(
            host=host,
            port=port,
            topic=self._config.push_topic,
            client_id=f"drivenest-{self._config.device.device_id}",
        )
        runtime = PushRuntime(
            loop=self._loop,
            on_payload=self.controller.push_received,
            keepalive=self._config.push_keepalive,
        )
        try:
            await self._loop.run_in_executor(None, runtime.start, endpoint)
        except Exception:
            _logger.warning("Push listener start failed", exc_info=True)
            return
        self._push_runtime = runtime

    async def _stop_push(self) -> None:
        runtime = self._push_runtime
        self._push_runtime = None
        if runtime is None or self._loop is None:
            return
        try:
            await self._loop.run_in_executor(None, runtime.stop)
        except Exception:
            _logger.debug("Push listener stop failed", exc_info=True)
