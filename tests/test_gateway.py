from __future__ import annotations

from typing import Any

import pytest
from conftest import CONTENT_URL, FakeTransport, make_config

from drivenest._constants import ATTRIBUTION_URL
from drivenest.exceptions import AttributionError, ConfigError, TransportError
from drivenest.gateway import AttributionGateway, build_config_request
from drivenest.models import AttributionPayload, AttributionSource


@pytest.mark.asyncio
async def test_fetch_content_url_posts_payload_with_device_facts(transport: FakeTransport) -> None:
    gateway = AttributionGateway(make_config(), transport)
    payload = AttributionPayload.from_source(AttributionSource.INSTALL, {"af_status": "Non-organic", "os": "Spoof"})

    url = await gateway.fetch_content_url(payload)

    assert url == CONTENT_URL
    endpoint, body = transport.post_calls[0]
    assert endpoint == "https://config.example.com/config.php"
    assert body["af_status"] == "Non-organic"
    assert body["os"] == "iOS"
    assert body["store_id"] == "id6740000000"
    assert body["bundle_id"] == "com.example.nest"
    assert body["firebase_project_id"] == "nest-project"
    assert body["locale"] == "en"
    assert body["af_id"] == "0000000000000-0000000"


@pytest.mark.parametrize(
    "response",
    [
        {"ok": False, "url": CONTENT_URL},
        {"ok": "true", "url": CONTENT_URL},
        {"ok": True},
        {"ok": True, "url": "not a url"},
        {"ok": True, "url": "ftp://files.example.com/x"},
        ["ok", CONTENT_URL],
    ],
)
@pytest.mark.asyncio
async def test_fetch_content_url_rejects_bad_bodies(transport: FakeTransport, response: Any) -> None:
    transport.post_responses = [response]
    gateway = AttributionGateway(make_config(), transport)
    with pytest.raises(ConfigError) as excinfo:
        await gateway.fetch_content_url({"af_status": "Non-organic"})
    assert excinfo.value.status_code == 200


@pytest.mark.asyncio
async def test_fetch_content_url_maps_transport_errors(transport: FakeTransport) -> None:
    transport.post_responses = [TransportError("HTTP 502", status_code=502, endpoint="x")]
    gateway = AttributionGateway(make_config(), transport)
    with pytest.raises(ConfigError) as excinfo:
        await gateway.fetch_content_url({})
    assert excinfo.value.status_code == 502
    assert isinstance(excinfo.value.__cause__, TransportError)


@pytest.mark.asyncio
async def test_fetch_organic_attribution_merges_without_overwriting(transport: FakeTransport) -> None:
    transport.get_responses = [{"af_status": "Organic", "install_time": "2026-01-01"}]
    gateway = AttributionGateway(make_config(store_id="id6740000000"), transport)

    payload = await gateway.fetch_organic_attribution({"af_status": "Non-organic", "campaign": "spring"})

    url, params = transport.get_calls[0]
    assert url == f"{ATTRIBUTION_URL}/id6740000000"
    assert params == {"devkey": "DEVKEY", "device_id": "0000000000000-0000000"}
    assert payload["af_status"] == "Organic"
    assert payload["campaign"] == "spring"
    assert AttributionSource.ORGANIC_FETCH in payload.sources


@pytest.mark.asyncio
async def test_fetch_organic_attribution_errors(transport: FakeTransport) -> None:
    gateway = AttributionGateway(make_config(), transport)

    transport.get_responses = [["not", "an", "object"]]
    with pytest.raises(AttributionError):
        await gateway.fetch_organic_attribution()

    transport.get_responses = [TransportError("HTTP 404", status_code=404)]
    with pytest.raises(AttributionError) as excinfo:
        await gateway.fetch_organic_attribution()
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_with_push_token_reports_stored_token(transport: FakeTransport) -> None:
    gateway = AttributionGateway(make_config(), transport)
    assert gateway.with_push_token(None) is gateway

    await gateway.with_push_token("PUSH-123").fetch_content_url({})

    assert transport.post_calls[0][1]["push_token"] == "PUSH-123"


def test_build_config_request_accepts_plain_mapping() -> None:
    body = build_config_request(make_config(locale="de"), {"media_source": "fb"})
    assert body["media_source"] == "fb"
    assert body["locale"] == "de"
    assert body["push_token"] == ""
