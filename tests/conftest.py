from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from drivenest.config import LoaderConfig
from drivenest.exceptions import TransportError

CONTENT_URL = "https://content.example.com/landing"


class FakeTransport:
    """Transport double: queued responses per method; the last one repeats.

    A queued exception instance is raised instead of returned.
    """

    def __init__(self) -> None:
        self.get_calls: list[tuple[str, dict[str, str]]] = []
        self.post_calls: list[tuple[str, dict[str, Any]]] = []
        self.get_responses: list[Any] = []
        self.post_responses: list[Any] = [{"ok": True, "url": CONTENT_URL}]

    @staticmethod
    def _next(queue: list[Any]) -> Any:
        if not queue:
            raise TransportError("no response queued", status_code=503)
        item = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def get_json(self, url: str, params: Mapping[str, str]) -> Any:
        self.get_calls.append((url, dict(params)))
        return self._next(self.get_responses)

    async def post_json(self, url: str, payload: Mapping[str, Any]) -> Any:
        self.post_calls.append((url, dict(payload)))
        return self._next(self.post_responses)


class FakeHost:
    """ContentHost double recording every call."""

    def __init__(self, cookies: list[dict[str, Any]] | None = None) -> None:
        self.loads: list[str] = []
        self.stops = 0
        self.backs = 0
        self.closed = False
        self.seeded: list[dict[str, Any]] = []
        self.cookies: list[dict[str, Any]] = list(cookies or [])

    def load(self, url: str) -> None:
        self.loads.append(url)

    def stop_loading(self) -> None:
        self.stops += 1

    def go_back(self) -> bool:
        self.backs += 1
        return True

    def close(self) -> None:
        self.closed = True

    def set_cookie(self, properties: Mapping[str, Any]) -> None:
        self.seeded.append(dict(properties))

    def get_cookies(self) -> list[dict[str, Any]]:
        return [dict(c) for c in self.cookies]


def make_config(**overrides: Any) -> LoaderConfig:
    values: dict[str, Any] = {
        "dev_key": "DEVKEY",
        "store_id": "6740000000",
        "bundle_id": "com.example.nest",
        "config_url": "https://config.example.com/config.php",
        "firebase_project_id": "nest-project",
        "merge_debounce": 0.01,
        "ignition_delay": 0.01,
        "connectivity_enabled": False,
    }
    values.update(overrides)
    return LoaderConfig(**values)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()
