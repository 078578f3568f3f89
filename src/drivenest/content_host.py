"""Glue between the controller and the embedded content renderer.

The renderer itself is external; it only has to satisfy
:class:`ContentHost`. This module seeds and persists its cookies,
decides which navigations stay inside it, and caps server redirects.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum
from http.cookies import CookieError, SimpleCookie
from typing import Any, Protocol
from urllib.parse import urlsplit

from drivenest._constants import INTERNAL_PREFIXES, INTERNAL_SCHEMES, REDIRECT_LIMIT
from drivenest.models.phase import DrivePhase, DriveSnapshot
from drivenest.state.store import ConfigStore, CookieJar

_logger = logging.getLogger(__name__)


class ContentHost(Protocol):
    """Structural interface of an embedded browser surface."""

    def load(self, url: str) -> None:
        ...

    def stop_loading(self) -> None:
        ...

    def go_back(self) -> bool:
        """Navigate back in history; ``False`` when there is no history."""
        ...

    def close(self) -> None:
        ...

    def set_cookie(self, properties: Mapping[str, Any]) -> None:
        ...

    def get_cookies(self) -> list[dict[str, Any]]:
        ...


class NavigationPolicy(StrEnum):
    ALLOW = "allow"
    CANCEL = "cancel"


def is_internal_url(url: str) -> bool:
    """Whether *url* should load inside the host rather than an external app."""
    lowered = url.strip().lower()
    if lowered.startswith(INTERNAL_PREFIXES):
        return True
    return urlsplit(lowered).scheme in INTERNAL_SCHEMES


def cookies_from_set_cookie(domain: str, headers: Iterable[str]) -> list[dict[str, Any]]:
    """Convert raw ``Set-Cookie`` header values into cookie property dicts."""
    cookies: list[dict[str, Any]] = []
    for raw in headers:
        jar: SimpleCookie = SimpleCookie()
        try:
            jar.load(raw)
        except CookieError:
            _logger.debug("Skipping unparsable Set-Cookie header")
            continue
        for name, morsel in jar.items():
            props: dict[str, Any] = {
                "name": name,
                "value": morsel.value,
                "domain": morsel["domain"] or domain,
                "path": morsel["path"] or "/",
            }
            for attr in ("expires", "max-age", "samesite"):
                if morsel[attr]:
                    props[attr] = morsel[attr]
            for flag in ("secure", "httponly"):
                if morsel[flag]:
                    props[flag] = True
            cookies.append(props)
    return cookies


def build_cookie_jar(cookies: Iterable[Mapping[str, Any]]) -> CookieJar:
    """Group cookie property dicts as domain -> name -> properties."""
    jar: CookieJar = {}
    for cookie in cookies:
        domain = cookie.get("domain")
        name = cookie.get("name")
        if not domain or not name:
            continue
        jar.setdefault(str(domain), {})[str(name)] = dict(cookie)
    return jar


class ContentHostSession:
    """Drives one :class:`ContentHost` on behalf of the controller.

    Follow the controller with ``controller.subscribe(session.follow)``:
    the host is pointed at every new content URL published while driving.
    """

    def __init__(
        self,
        host: ContentHost,
        store: ConfigStore,
        *,
        redirect_limit: int = REDIRECT_LIMIT,
        open_external: Callable[[str], None] | None = None,
    ) -> None:
        self._host = host
        self._store = store
        self._redirect_limit = redirect_limit
        self._open_external = open_external
        self._redirects = 0
        self._last_url: str | None = None
        self._current: str | None = None
        self._children: list[ContentHost] = []

    @property
    def last_url(self) -> str | None:
        return self._last_url

    @property
    def redirect_count(self) -> int:
        return self._redirects

    @property
    def children(self) -> tuple[ContentHost, ...]:
        return tuple(self._children)

    def follow(self, snapshot: DriveSnapshot) -> None:
        if snapshot.phase is not DrivePhase.DRIVING or not snapshot.content_url:
            return
        if snapshot.content_url != self._current:
            self.open(snapshot.content_url)

    def open(self, url: str) -> None:
        """Seed stored cookies, then start a top-level navigation to *url*."""
        if self._current is None:
            self.seed_cookies()
        self._current = url
        self._redirects = 0
        _logger.debug("Content host loading %s", url)
        self._host.load(url)

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    def seed_cookies(self) -> int:
        jar = self._store.load_cookies()
        count = 0
        for cookies in jar.values():
            for props in cookies.values():
                self._host.set_cookie(props)
                count += 1
        return count

    def persist_cookies(self) -> None:
        self._store.save_cookies(build_cookie_jar(self._host.get_cookies()))

    # ------------------------------------------------------------------
    # Navigation lifecycle
    # ------------------------------------------------------------------

    def decide_policy(self, url: str) -> NavigationPolicy:
        """Allow internal navigations; hand anything else to the external opener."""
        self._last_url = url
        if is_internal_url(url):
            return NavigationPolicy.ALLOW
        if self._open_external is not None:
            self._open_external(url)
        return NavigationPolicy.CANCEL

    def on_server_redirect(self, current_url: str | None) -> bool:
        """Count a server redirect; return ``True`` when the navigation was aborted.

        Past the redirect limit the load is stopped and the last recorded
        URL is loaded again instead.
        """
        self._redirects += 1
        if self._redirects > self._redirect_limit:
            _logger.warning("Redirect limit %s exceeded; aborting navigation", self._redirect_limit)
            self._host.stop_loading()
            if self._last_url:
                self._host.load(self._last_url)
            return True
        if current_url:
            self._last_url = current_url
        self.persist_cookies()
        return False

    def on_navigation_finished(self) -> None:
        self._redirects = 0

    def on_provisional_failure(self, *, too_many_redirects: bool) -> None:
        if too_many_redirects and self._last_url:
            self._host.load(self._last_url)

    # ------------------------------------------------------------------
    # Child surfaces (popup windows)
    # ------------------------------------------------------------------

    def open_child(self, child: ContentHost, url: str | None) -> None:
        self._children.append(child)
        if url and url.strip() and url.strip() != "about:blank":
            child.load(url)

    def step_back(self, url: str | None = None) -> None:
        """Close the top child surface (optionally loading *url* in the main one), else go back."""
        if self._children:
            self._children.pop().close()
            if url:
                self._host.load(url)
            return
        self._host.go_back()
