"""Reachability monitor.

Polls a probe on a background thread and reports ``satisfied`` /
``unsatisfied`` transitions onto an asyncio loop. The controller turns
each report into a queued event; nothing here touches controller state.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from collections.abc import Callable

_logger = logging.getLogger(__name__)

Probe = Callable[[], bool]


def tcp_probe(host: str, port: int, *, timeout: float = 3.0) -> Probe:
    """Probe that succeeds when a TCP connection to ``host:port`` opens."""

    def _probe() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    return _probe


class ConnectivityMonitor:
    """Threaded reachability feed emitting transitions onto an asyncio loop."""

    def __init__(
        self,
        probe: Probe,
        *,
        interval: float = 2.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._probe = probe
        self._interval = interval
        self._logger = logger or _logger
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._last: bool | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_status(self) -> bool | None:
        return self._last

    def start(self, loop: asyncio.AbstractEventLoop, on_change: Callable[[bool], None]) -> None:
        """Start polling; *on_change* runs on *loop* for every transition."""
        self.stop()
        self._stop_event = threading.Event()
        self._last = None
        stop_event = self._stop_event

        def _worker() -> None:
            self._logger.debug("Connectivity monitor started interval=%s", self._interval)
            while not stop_event.is_set():
                try:
                    satisfied = bool(self._probe())
                except Exception:
                    self._logger.debug("Connectivity probe raised", exc_info=True)
                    satisfied = False
                if satisfied is not self._last:
                    self._last = satisfied
                    self._logger.debug("Connectivity %s", "satisfied" if satisfied else "unsatisfied")
                    try:
                        loop.call_soon_threadsafe(on_change, satisfied)
                    except RuntimeError:
                        # Loop closed underneath us.
                        break
                stop_event.wait(self._interval)
            self._logger.debug("Connectivity monitor stopped")

        thread = threading.Thread(target=_worker, name="drivenest-connectivity", daemon=True)
        self._thread = thread
        thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop polling and join the worker thread."""
        thread = self._thread
        self._thread = None
        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
