from __future__ import annotations

import pytest
from conftest import CONTENT_URL, FakeHost, FakeTransport, make_config

from drivenest import ContentLoader, DrivePhase, MemoryStore
from drivenest.exceptions import DriveNestError


@pytest.mark.asyncio
async def test_loader_points_content_host_at_resolved_url(transport: FakeTransport, host: FakeHost) -> None:
    backend = MemoryStore({"perms_accepted": True})
    async with ContentLoader(make_config(), backend, transport=transport, content_host=host) as loader:
        loader.on_attribution({"af_status": "Non-organic"})
        snapshot = await loader.wait_until_settled(2.0)
        assert loader.content_host is not None

    assert snapshot.phase is DrivePhase.DRIVING
    assert host.loads == [CONTENT_URL]


@pytest.mark.asyncio
async def test_loader_resumes_cached_url_on_enter(transport: FakeTransport, host: FakeHost) -> None:
    cached = "https://content.example.com/cached"
    backend = MemoryStore(
        {
            "app_state": "Active",
            "stored_config": cached,
            "preserved_grains": {"example.com": {"sid": {"name": "sid", "value": "1", "domain": "example.com"}}},
        }
    )
    async with ContentLoader(make_config(), backend, transport=transport, content_host=host) as loader:
        assert loader.snapshot.phase is DrivePhase.DRIVING
        assert host.loads == [cached]
        assert host.seeded[0]["name"] == "sid"

        pushed = "https://push.example.com/offer"
        loader.on_push({"data": {"url": pushed}})
        await loader.controller.wait_for(lambda s: s.content_url == pushed, 2.0)
        assert host.loads == [cached, pushed]

    assert transport.post_calls == []


@pytest.mark.asyncio
async def test_loader_permission_prompt_is_answered_through_facade(transport: FakeTransport) -> None:
    backend = MemoryStore()
    async with ContentLoader(make_config(), backend, transport=transport) as loader:
        loader.on_attribution({"af_status": "Non-organic"})
        prompt = await loader.wait_until_settled(2.0)
        assert prompt.awaiting_permission
        loader.answer_permission(True)
        snapshot = await loader.controller.wait_for(lambda s: s.phase is DrivePhase.DRIVING, 2.0)

    assert snapshot.content_url == CONTENT_URL
    assert backend.snapshot()["perms_accepted"] is True


def test_controller_requires_started_loader(transport: FakeTransport) -> None:
    loader = ContentLoader(make_config(), MemoryStore(), transport=transport)
    with pytest.raises(DriveNestError):
        _ = loader.controller
