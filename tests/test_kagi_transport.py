from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from sidebrief.summaries import (
    KagiEndpoints,
    KagiTransport,
    Settings,
    StaticSettingsProvider,
    SummaryResolver,
    TransportConnectionError,
    TransportError,
    TransportTimeout,
    UrlRequest,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_credentialed_requests_carry_session_cookie() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"output_text": "ok"})

    async with _client(handler) as client:
        transport = KagiTransport("sess-123", client=client)
        await transport.request("GET", "https://kagi.test/free", headers={}, credentialed=True)
        await transport.request("GET", "https://kagi.test/paid", headers={}, credentialed=False)

    assert seen[0].headers["cookie"] == "kagi_session=sess-123"
    assert "cookie" not in seen[1].headers


@pytest.mark.asyncio
async def test_response_cookies_are_not_replayed() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, headers={"set-cookie": "tracker=1; Path=/"}, json={})

    async with _client(handler) as client:
        transport = KagiTransport(client=client)
        await transport.request("GET", "https://kagi.test/a", headers={})
        await transport.request("GET", "https://kagi.test/b", headers={})

    assert "cookie" not in seen[1].headers


@pytest.mark.asyncio
async def test_post_sends_json_body_and_parses_response() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"data": {"output": "done"}})

    async with _client(handler) as client:
        transport = KagiTransport(client=client)
        response = await transport.request(
            "POST",
            "https://kagi.test/api",
            headers={"Authorization": "Bot tok", "Content-Type": "application/json"},
            json={"text": "hello", "summary_type": "summary"},
        )

    assert captured == {"body": {"text": "hello", "summary_type": "summary"}, "auth": "Bot tok"}
    assert response.status == 200
    assert response.json_body == {"data": {"output": "done"}}
    assert response.is_json


@pytest.mark.asyncio
async def test_non_json_body_is_kept_as_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, headers={"Content-Type": "text/html"}, text="<h1>down</h1>")

    async with _client(handler) as client:
        response = await KagiTransport(client=client).request("GET", "https://kagi.test/", headers={})

    assert response.status == 500
    assert response.reason == "Internal Server Error"
    assert response.json_body is None
    assert response.text == "<h1>down</h1>"
    assert response.content_type == "text/html"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,expected",
    [
        (httpx.ReadTimeout, TransportTimeout),
        (httpx.ConnectTimeout, TransportTimeout),
        (httpx.ConnectError, TransportConnectionError),
        (httpx.RemoteProtocolError, TransportError),
    ],
)
async def test_httpx_failures_are_wrapped(error, expected) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error("failure", request=request)

    async with _client(handler) as client:
        transport = KagiTransport(client=client)
        with pytest.raises(expected):
            await transport.request("GET", "https://kagi.test/", headers={})


@pytest.mark.asyncio
async def test_free_request_wire_format_end_to_end() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"output_text": "Summary", "output_data": {"word_stats": {"time_saved": 6}}},
        )

    endpoints = KagiEndpoints.from_base("https://kagi.test/")
    async with _client(handler) as client:
        transport = KagiTransport("sess", client=client)
        resolver = SummaryResolver(
            StaticSettingsProvider(Settings(target_language="EN")), transport, endpoints=endpoints
        )
        outcome = await resolver.resolve(UrlRequest(url="https://example.com/a?b=1"))

    (request,) = seen
    assert request.method == "GET"
    assert request.url.path == "/mother/summary_labs"
    assert dict(request.url.params) == {
        "url": "https://example.com/a?b=1",
        "summary_type": "summary",
        "target_language": "EN",
    }
    assert request.headers["cookie"] == "kagi_session=sess"
    assert "authorization" not in request.headers
    assert outcome.success is True
    assert outcome.time_saved_minutes == 6


@pytest.mark.asyncio
async def test_owned_client_is_closed() -> None:
    transport = KagiTransport()
    await transport.aclose()

    assert transport._client.is_closed
