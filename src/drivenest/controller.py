"""Drive controller: the launch-time state machine.

All inputs arrive as typed events on one queue and are handled by a
single consumer task, so no two transition handlers ever run at the
same time. Handlers are synchronous; network calls run as separate
tasks whose results come back as events. At most one timer is pending
per controller: arming a timer cancels the previous one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from drivenest.config import LoaderConfig
from drivenest.connectivity import ConnectivityMonitor
from drivenest.exceptions import DriveNestError
from drivenest.gateway import AttributionGateway
from drivenest.models.attribution import AttributionPayload, AttributionSource, deep_link_url, push_url
from drivenest.models.events import (
    AttributionReceived,
    ConnectivityChanged,
    ContentUrlFetched,
    ControllerEvent,
    DeepLinkResolved,
    OrganicAttributionFetched,
    PermissionAnswered,
    PushReceived,
    TimerFired,
    TimerKind,
)
from drivenest.models.phase import AppMode, DecisionRule, DrivePhase, DriveSnapshot
from drivenest.models.stored import StoredConfig
from drivenest.state.decision import decide
from drivenest.state.policy import record_answer, should_prompt_for
from drivenest.state.store import ConfigStore

_logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[DriveSnapshot], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class _SnapshotWaiter:
    predicate: Callable[[DriveSnapshot], bool]
    future: asyncio.Future[DriveSnapshot]


class DriveController:
    """Decides the drive phase for one launch and publishes it.

    Usage::

        controller = DriveController(config, gateway, ConfigStore(MemoryStore()))
        async with controller:
            controller.attribution_received({"af_status": "Non-organic"})
            snapshot = await controller.wait_for(lambda s: s.phase is not DrivePhase.IGNITION)
    """

    def __init__(
        self,
        config: LoaderConfig,
        gateway: AttributionGateway,
        store: ConfigStore,
        *,
        monitor: ConnectivityMonitor | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._store = store
        self._monitor = monitor
        self._clock = clock

        self._queue: asyncio.Queue[ControllerEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        self._stored = StoredConfig()
        self._snapshot = DriveSnapshot()
        self._subscribers: list[SnapshotCallback] = []
        self._waiters: list[_SnapshotWaiter] = []

        self._timer: asyncio.TimerHandle | None = None
        self._timer_kind: TimerKind | None = None
        self._timer_token = 0

        self._first_launch = True
        self._install: AttributionPayload | None = None
        self._deep_link: AttributionPayload | None = None
        self._attribution: AttributionPayload | None = None
        self._fetch_task: asyncio.Task[None] | None = None
        self._online: bool | None = None
        self._pre_outage: DrivePhase | None = None
        self._rule: DecisionRule | None = None
        self._seen_links: set[str] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DriveController:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Load persisted state, settle what can be settled offline, start consuming events."""
        if self._consumer is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._stored = self._store.load()
        self._first_launch = not self._stored.has_launched_before

        if self._stored.is_legacy:
            _logger.info("Legacy mode is set; staying parked without network resolution")
            self._publish(phase=DrivePhase.PARKED)
        elif self._stored.app_mode is AppMode.ACTIVE and self._stored.cached_content_url:
            _logger.info("Resuming cached content URL from the previous launch")
            self._drive(self._stored.cached_content_url)

        self._consumer = asyncio.create_task(self._run(), name="drivenest-controller")
        if self._monitor is not None:
            self._monitor.start(self._loop, self.connectivity_changed)

    async def stop(self) -> None:
        """Cancel the pending timer, in-flight fetches, and the consumer; stop the monitor."""
        if self._monitor is not None and self._loop is not None:
            await self._loop.run_in_executor(None, self._monitor.stop)
        self._cancel_timer()
        pending = [*self._tasks]
        if self._consumer is not None:
            pending.append(self._consumer)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._consumer = None
        self._fetch_task = None
        for waiter in self._waiters:
            if not waiter.future.done():
                waiter.future.cancel()
        self._waiters.clear()

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def post(self, event: ControllerEvent) -> None:
        """Queue an event. Must be called from the controller's event loop."""
        self._queue.put_nowait(event)

    def post_threadsafe(self, event: ControllerEvent) -> None:
        """Queue an event from any thread."""
        if self._loop is None:
            raise DriveNestError("Controller not started")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def attribution_received(self, data: Mapping[str, Any]) -> None:
        self.post(AttributionReceived(dict(data)))

    def deep_link_resolved(self, data: Mapping[str, Any]) -> None:
        self.post(DeepLinkResolved(dict(data)))

    def push_received(self, data: Mapping[str, Any]) -> None:
        self.post(PushReceived(dict(data)))

    def connectivity_changed(self, satisfied: bool) -> None:
        self.post(ConnectivityChanged(satisfied))

    def answer_permission(self, granted: bool, *, system_denied: bool = False) -> None:
        self.post(PermissionAnswered(granted=granted, system_denied=system_denied))

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Presentation hooks
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> DriveSnapshot:
        return self._snapshot

    @property
    def phase(self) -> DrivePhase:
        return self._snapshot.phase

    @property
    def content_url(self) -> str | None:
        return self._snapshot.content_url

    @property
    def stored(self) -> StoredConfig:
        return self._stored

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Call *callback* with every new snapshot; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def wait_for(
        self,
        predicate: Callable[[DriveSnapshot], bool],
        timeout: float | None = None,
    ) -> DriveSnapshot:
        """Wait until a published snapshot satisfies *predicate*."""
        if predicate(self._snapshot):
            return self._snapshot
        future: asyncio.Future[DriveSnapshot] = asyncio.get_running_loop().create_future()
        waiter = _SnapshotWaiter(predicate=predicate, future=future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._handle(event)
            except Exception:
                _logger.exception("Failed to handle %s", type(event).__name__)
            finally:
                self._queue.task_done()

    def _handle(self, event: ControllerEvent) -> None:
        if isinstance(event, AttributionReceived):
            self._on_attribution(event)
        elif isinstance(event, DeepLinkResolved):
            self._on_deep_link(event)
        elif isinstance(event, PushReceived):
            self._on_push(event)
        elif isinstance(event, ConnectivityChanged):
            self._on_connectivity(event)
        elif isinstance(event, PermissionAnswered):
            self._on_permission(event)
        elif isinstance(event, TimerFired):
            self._on_timer(event)
        elif isinstance(event, OrganicAttributionFetched):
            self._on_organic_attribution(event)
        elif isinstance(event, ContentUrlFetched):
            self._on_content_url(event)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_attribution(self, event: AttributionReceived) -> None:
        if self._install is not None or not self._resolving:
            _logger.debug("Ignoring attribution callback (already received or phase settled)")
            return
        payload = AttributionPayload.from_source(AttributionSource.INSTALL, event.data)
        if payload.is_empty:
            return
        self._install = payload
        if self._deep_link is not None:
            self._dispatch()
        else:
            self._arm_timer(TimerKind.MERGE, self._config.merge_debounce)

    def _on_deep_link(self, event: DeepLinkResolved) -> None:
        url = deep_link_url(event.data)
        if url:
            self._accept_link(url)
        if self._deep_link is None:
            self._deep_link = AttributionPayload.from_source(AttributionSource.DEEP_LINK, event.data)

        if self._timer_kind is TimerKind.MERGE:
            self._dispatch()
        elif self._timer_kind is TimerKind.IGNITION:
            self._cancel_timer()
            self._start_organic_fetch()

    def _on_push(self, event: PushReceived) -> None:
        url = push_url(event.data)
        if url:
            self._accept_link(url)

    def _on_connectivity(self, event: ConnectivityChanged) -> None:
        was_online, self._online = self._online, event.satisfied
        if was_online is event.satisfied:
            return
        phase = self._snapshot.phase

        if not event.satisfied:
            if phase is DrivePhase.NO_SIGNAL:
                return
            if self._stored.app_mode is AppMode.ACTIVE:
                self._pre_outage = phase
                self._publish(phase=DrivePhase.NO_SIGNAL)
            elif phase is not DrivePhase.PARKED:
                self._cancel_timer()
                self._publish(phase=DrivePhase.PARKED, awaiting_permission=False)
            return

        if phase is not DrivePhase.NO_SIGNAL:
            return
        # Cleared only once the phase leaves NO_SIGNAL.
        previous = self._pre_outage
        if previous is DrivePhase.DRIVING:
            _logger.info("Connectivity restored; re-attempting content URL resolution")
            self._publish(awaiting_permission=False)
            self._start_content_fetch()
        elif previous is DrivePhase.IGNITION:
            _logger.info("Connectivity restored; resuming launch resolution")
            if self._rule is DecisionRule.RESOLVE:
                self._begin_resolution()
        else:
            self._publish(phase=DrivePhase.PARKED)

    def _on_permission(self, event: PermissionAnswered) -> None:
        if not self._snapshot.awaiting_permission:
            return
        self._commit(
            record_answer(
                self._stored,
                granted=event.granted,
                system_denied=event.system_denied,
                now=self._clock(),
            )
        )
        self._publish(awaiting_permission=False)
        self._start_content_fetch()

    def _on_timer(self, event: TimerFired) -> None:
        if self._timer is None or event.token != self._timer_token:
            return
        self._timer = None
        self._timer_kind = None
        if event.kind is TimerKind.MERGE:
            self._dispatch()
        else:
            self._start_organic_fetch()

    def _on_organic_attribution(self, event: OrganicAttributionFetched) -> None:
        if not self._resolving:
            return
        if event.payload is None:
            _logger.warning("Organic attribution fetch failed: %s", event.error)
            self._fall_back()
            return
        if self._attribution is not None:
            self._attribution = event.payload.merge(self._attribution)
        else:
            self._attribution = event.payload
        self._evaluate(first_launch=False)

    def _on_content_url(self, event: ContentUrlFetched) -> None:
        self._fetch_task = None
        phase = self._snapshot.phase
        if phase is DrivePhase.PARKED:
            _logger.debug("Discarding content URL result; already parked")
            return

        if phase is DrivePhase.NO_SIGNAL and self._online is False:
            # Keep the outage screen; a failure is retried on reconnect.
            if event.url is not None:
                self._commit_active(event.url)
                self._pre_outage = DrivePhase.DRIVING
            return

        if event.url is not None:
            self._commit_active(event.url)
            self._drive(event.url)
        else:
            _logger.warning("Content URL resolution failed: %s", event.error)
            self._fall_back()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @property
    def _resolving(self) -> bool:
        """Launch resolution still open, possibly interrupted by an outage."""
        phase = self._snapshot.phase
        return phase is DrivePhase.IGNITION or (
            phase is DrivePhase.NO_SIGNAL and self._pre_outage is DrivePhase.IGNITION
        )

    def _dispatch(self) -> None:
        self._cancel_timer()
        if self._attribution is not None or self._install is None:
            return
        self._attribution = self._install.merge(self._deep_link) if self._deep_link else self._install
        self._evaluate(first_launch=self._first_launch)

    def _evaluate(self, *, first_launch: bool) -> None:
        decision = decide(
            self._attribution,
            is_first_launch=first_launch,
            resolved_url=self._stored.cached_content_url,
            pending_deep_link_url=self._stored.pending_deep_link,
            stored_mode=self._stored.app_mode,
        )
        _logger.debug("Decision: %s (%s)", decision.phase, decision.rule)
        self._rule = decision.rule

        if decision.rule is DecisionRule.LEGACY_MODE:
            self._publish(phase=DrivePhase.PARKED)
        elif decision.rule is DecisionRule.ORGANIC_FIRST_LAUNCH:
            self._arm_timer(TimerKind.IGNITION, self._config.ignition_delay)
        elif decision.rule is DecisionRule.DEEP_LINK:
            pending = self._stored.pending_deep_link
            if pending:
                self._drive(pending)
        elif decision.rule is DecisionRule.RESOLVE:
            self._begin_resolution()

    def _begin_resolution(self) -> None:
        if should_prompt_for(
            self._stored,
            now=self._clock(),
            cooldown_seconds=self._config.permission_cooldown,
        ):
            self._publish(awaiting_permission=True)
            return
        self._start_content_fetch()

    def _fall_back(self) -> None:
        cached = self._stored.cached_content_url
        if cached:
            _logger.warning("Falling back to the cached content URL")
            self._commit(self._stored.model_copy(update={"has_launched_before": True}))
            self._drive(cached)
            return
        _logger.warning("No cached content URL; parking in legacy mode")
        self._commit(self._stored.model_copy(update={"app_mode": AppMode.LEGACY, "has_launched_before": True}))
        self._publish(phase=DrivePhase.PARKED, awaiting_permission=False)

    def _drive(self, url: str) -> None:
        pending = self._stored.pending_deep_link
        if pending:
            self._commit(self._stored.model_copy(update={"pending_deep_link": None}))
            url = pending
        self._publish(phase=DrivePhase.DRIVING, content_url=url, awaiting_permission=False)

    def _accept_link(self, url: str) -> None:
        if url in self._seen_links:
            return
        self._seen_links.add(url)
        if self._snapshot.phase is DrivePhase.DRIVING:
            _logger.info("Navigating to deep link while driving")
            self._publish(content_url=url)
            return
        self._commit(self._stored.model_copy(update={"pending_deep_link": url}))

    def _commit_active(self, url: str) -> None:
        self._commit(
            self._stored.model_copy(
                update={
                    "cached_content_url": url,
                    "app_mode": AppMode.ACTIVE,
                    "has_launched_before": True,
                }
            )
        )

    def _commit(self, stored: StoredConfig) -> None:
        if self._stored.is_legacy and not stored.is_legacy:
            stored = stored.model_copy(update={"app_mode": AppMode.LEGACY})
        self._store.commit(self._stored, stored)
        self._stored = stored

    def _publish(self, **changes: Any) -> None:
        snapshot = self._snapshot.model_copy(update=changes)
        if snapshot == self._snapshot:
            return
        previous, self._snapshot = self._snapshot, snapshot
        if snapshot.phase is not previous.phase:
            _logger.info("Drive phase %s -> %s", previous.phase, snapshot.phase)
            if snapshot.phase is not DrivePhase.NO_SIGNAL:
                self._pre_outage = None
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                _logger.exception("Snapshot subscriber failed")
        for waiter in list(self._waiters):
            if not waiter.future.done() and waiter.predicate(snapshot):
                waiter.future.set_result(snapshot)

    # ------------------------------------------------------------------
    # Timers and background work
    # ------------------------------------------------------------------

    def _arm_timer(self, kind: TimerKind, delay: float) -> None:
        self._cancel_timer()
        assert self._loop is not None  # noqa: S101
        self._timer_token += 1
        self._timer_kind = kind
        self._timer = self._loop.call_later(delay, self.post, TimerFired(kind, self._timer_token))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._timer_kind = None

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _start_organic_fetch(self) -> None:
        deep_link = self._deep_link

        async def _fetch() -> None:
            try:
                payload = await self._gateway.fetch_organic_attribution(deep_link)
            except DriveNestError as exc:
                self.post(OrganicAttributionFetched(error=exc))
            else:
                self.post(OrganicAttributionFetched(payload=payload))

        self._spawn(_fetch(), "drivenest-organic-attribution")

    def _start_content_fetch(self) -> None:
        if self._fetch_task is not None and not self._fetch_task.done():
            return
        gateway = self._gateway.with_push_token(self._stored.push_token)
        payload = self._attribution or AttributionPayload()

        async def _fetch() -> None:
            try:
                url = await gateway.fetch_content_url(payload)
            except DriveNestError as exc:
                self.post(ContentUrlFetched(error=exc))
            else:
                self.post(ContentUrlFetched(url=url))

        self._fetch_task = self._spawn(_fetch(), "drivenest-content-url")
