"""String-keyed persistent store and the config layer on top of it.

The controller is the only writer. It reads a :class:`StoredConfig`
snapshot once per launch and commits new snapshots at transition
boundaries; :meth:`ConfigStore.commit` writes only the keys whose value
changed, so committing the same snapshot twice is a no-op.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from drivenest._constants import KEY_COOKIES, KEY_FCM_TOKEN
from drivenest.exceptions import PersistenceError
from drivenest.models.stored import STORED_KEYS, StoredConfig

_logger = logging.getLogger(__name__)

CookieJar = dict[str, dict[str, dict[str, Any]]]


class KeyValueStore(Protocol):
    """Structural interface for the platform key-value store.

    Implementations raise :class:`PersistenceError` on failure.
    """

    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store; the default for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self.writes += 1

    def remove(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self.writes += 1

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)


class JsonFileStore:
    """Store backed by a single JSON object on disk, replaced atomically on write."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._values: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._values is not None:
            return self._values
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._values = {}
            return self._values
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self._path}: {exc}") from exc
        try:
            data = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Corrupt store file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Store file {self._path} does not hold a JSON object")
        self._values = data
        return data

    def _flush(self, values: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        except OSError as exc:
            raise PersistenceError(f"Cannot write {self._path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(values, fh, separators=(",", ":"), sort_keys=True)
            os.replace(tmp, self._path)
        except BaseException as exc:
            Path(tmp).unlink(missing_ok=True)
            if isinstance(exc, (OSError, TypeError, ValueError)):
                raise PersistenceError(f"Cannot write {self._path}: {exc}") from exc
            raise

    def get(self, key: str) -> Any:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            values = dict(self._load())
            values[key] = value
            self._flush(values)
            self._values = values

    def remove(self, key: str) -> None:
        with self._lock:
            values = dict(self._load())
            if key not in values:
                return
            del values[key]
            self._flush(values)
            self._values = values


class ConfigStore:
    """Typed access to the persisted loader state.

    Store failures are logged and read as "value absent"; they never
    reach the controller's callers.
    """

    def __init__(self, backend: KeyValueStore) -> None:
        self._backend = backend

    def _get(self, key: str) -> Any:
        try:
            return self._backend.get(key)
        except PersistenceError:
            _logger.warning("Store read failed for %s; treating as absent", key, exc_info=True)
            return None

    def _set(self, key: str, value: Any) -> bool:
        try:
            if value is None:
                self._backend.remove(key)
            else:
                self._backend.set(key, value)
        except PersistenceError:
            _logger.warning("Store write failed for %s", key, exc_info=True)
            return False
        return True

    def load(self) -> StoredConfig:
        keys = set(STORED_KEYS.values()) | {KEY_FCM_TOKEN}
        return StoredConfig.from_values({key: self._get(key) for key in keys})

    def commit(self, previous: StoredConfig, current: StoredConfig) -> list[str]:
        """Persist the keys that differ between two snapshots; return them."""
        before = previous.to_values()
        after = current.to_values()
        changed = [key for key, value in after.items() if before.get(key) != value]
        written = [key for key in changed if self._set(key, after[key])]
        if written:
            _logger.debug("Committed stored keys: %s", ", ".join(written))
        return written

    def load_cookies(self) -> CookieJar:
        raw = self._get(KEY_COOKIES)
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                _logger.warning("Discarding unparsable cookie jar")
                return {}
        if not isinstance(raw, dict):
            return {}
        jar: CookieJar = {}
        for domain, cookies in raw.items():
            if not isinstance(cookies, dict):
                continue
            jar[str(domain)] = {
                str(name): dict(props) for name, props in cookies.items() if isinstance(props, dict)
            }
        return jar

    def save_cookies(self, jar: CookieJar) -> None:
        if self._get(KEY_COOKIES) == jar:
            return
        self._set(KEY_COOKIES, jar)
