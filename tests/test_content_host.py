from __future__ import annotations

from conftest import FakeHost

from drivenest.content_host import (
    ContentHostSession,
    NavigationPolicy,
    build_cookie_jar,
    cookies_from_set_cookie,
    is_internal_url,
)
from drivenest.models import DrivePhase, DriveSnapshot
from drivenest.state.store import ConfigStore, MemoryStore

SID = {"name": "sid", "value": "abc", "domain": "example.com", "path": "/"}


def _session(host: FakeHost, backend: MemoryStore | None = None, **kwargs: object) -> ContentHostSession:
    return ContentHostSession(host, ConfigStore(backend or MemoryStore()), **kwargs)  # type: ignore[arg-type]


def test_seventy_first_redirect_aborts_to_last_url(host: FakeHost) -> None:
    session = _session(host)
    session.open("https://content.example.com/0")

    for i in range(1, 71):
        assert session.on_server_redirect(f"https://content.example.com/{i}") is False
    assert host.stops == 0

    assert session.on_server_redirect("https://content.example.com/71") is True
    assert host.stops == 1
    assert host.loads[-1] == "https://content.example.com/70"


def test_finished_navigation_resets_redirect_count(host: FakeHost) -> None:
    session = _session(host, redirect_limit=2)
    session.open("https://content.example.com/")
    session.on_server_redirect("https://content.example.com/a")
    session.on_server_redirect("https://content.example.com/b")
    session.on_navigation_finished()
    assert session.redirect_count == 0
    assert session.on_server_redirect("https://content.example.com/c") is False


def test_cookies_persist_on_redirect_and_seed_on_open() -> None:
    backend = MemoryStore()
    first = FakeHost(cookies=[SID])
    session = _session(first, backend)
    session.open("https://content.example.com/")
    session.on_server_redirect("https://content.example.com/next")

    assert backend.snapshot()["preserved_grains"] == {"example.com": {"sid": SID}}

    second = FakeHost()
    _session(second, backend).open("https://content.example.com/")
    assert second.seeded == [SID]


def test_too_many_redirects_failure_reloads_last_url(host: FakeHost) -> None:
    session = _session(host)
    session.decide_policy("https://content.example.com/page")
    session.on_provisional_failure(too_many_redirects=True)
    assert host.loads == ["https://content.example.com/page"]
    session.on_provisional_failure(too_many_redirects=False)
    assert len(host.loads) == 1


def test_decide_policy_routes_external_schemes(host: FakeHost) -> None:
    opened: list[str] = []
    session = _session(host, open_external=opened.append)

    assert session.decide_policy("https://content.example.com") is NavigationPolicy.ALLOW
    assert session.decide_policy("about:srcdoc") is NavigationPolicy.ALLOW
    assert session.decide_policy("tel:+123456") is NavigationPolicy.CANCEL
    assert session.decide_policy("itms-apps://apps.apple.com/app/id1") is NavigationPolicy.CANCEL
    assert opened == ["tel:+123456", "itms-apps://apps.apple.com/app/id1"]


def test_is_internal_url() -> None:
    assert is_internal_url("HTTPS://Example.com")
    assert is_internal_url("blob:https://example.com/uuid")
    assert is_internal_url("javascript:void(0)")
    assert not is_internal_url("mailto:someone@example.com")


def test_follow_loads_each_new_content_url_once(host: FakeHost) -> None:
    session = _session(host)
    session.follow(DriveSnapshot(phase=DrivePhase.IGNITION))
    session.follow(DriveSnapshot(phase=DrivePhase.DRIVING, content_url="https://a.example.com"))
    session.follow(DriveSnapshot(phase=DrivePhase.DRIVING, content_url="https://a.example.com"))
    session.follow(DriveSnapshot(phase=DrivePhase.DRIVING, content_url="https://b.example.com"))
    assert host.loads == ["https://a.example.com", "https://b.example.com"]


def test_child_surfaces_and_step_back(host: FakeHost) -> None:
    session = _session(host)
    child = FakeHost()
    blank = FakeHost()

    session.open_child(child, "https://popup.example.com")
    session.open_child(blank, "about:blank")
    assert child.loads == ["https://popup.example.com"]
    assert blank.loads == []
    assert len(session.children) == 2

    session.step_back()
    assert blank.closed
    session.step_back("https://content.example.com/return")
    assert child.closed
    assert host.loads == ["https://content.example.com/return"]

    session.step_back()
    assert host.backs == 1


def test_cookies_from_set_cookie_headers() -> None:
    cookies = cookies_from_set_cookie(
        "example.com",
        ["sid=abc; Path=/app; Secure; HttpOnly", "lang=en; Domain=.example.com; Max-Age=3600"],
    )
    assert cookies[0] == {
        "name": "sid",
        "value": "abc",
        "domain": "example.com",
        "path": "/app",
        "secure": True,
        "httponly": True,
    }
    assert cookies[1]["domain"] == ".example.com"
    assert cookies[1]["max-age"] == "3600"
    assert build_cookie_jar(cookies) == {
        "example.com": {"sid": cookies[0]},
        ".example.com": {"lang": cookies[1]},
    }
