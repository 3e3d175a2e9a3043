from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from hal_pm_agent.core.cancellation import CancellationToken
from hal_pm_agent.core.exceptions import (
    HalConnectionError,
    HalTimeoutError,
    HalTransportError,
    OperationCancelled,
)
from hal_pm_agent.hal.transport import HalTransport, RequestEnvelope

BASE_URL = "https://hal.test"


def _transport(handler: Any, **kwargs: Any) -> HalTransport:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HalTransport(BASE_URL, client=client, **kwargs)


@pytest.mark.parametrize("requested, expected", [(0, 1000), (250, 1000), (999, 1000), (1000, 1000), (20_000, 20_000)])
def test_timeout_floor(requested: int, expected: int) -> None:
    envelope = RequestEnvelope("/api/tickets/get", timeout_ms=requested)
    assert envelope.effective_timeout_ms == expected


@pytest.mark.anyio
async def test_clamped_timeout_reaches_the_http_request() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["timeout"] = request.extensions["timeout"]
        return httpx.Response(200, json={"success": True})

    async with _transport(handler) as transport:
        await transport.send(RequestEnvelope("/api/tickets/get", timeout_ms=5))

    assert observed["timeout"]["read"] == 1.0


@pytest.mark.anyio
async def test_posts_json_with_content_type() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["method"] = request.method
        observed["path"] = request.url.path
        observed["content_type"] = request.headers["content-type"]
        observed["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "ticket": {"id": "1"}})

    async with _transport(handler) as transport:
        result = await transport.send(
            RequestEnvelope("/api/tickets/get", body={"ticketId": "HAL-0001"})
        )

    assert observed == {
        "method": "POST",
        "path": "/api/tickets/get",
        "content_type": "application/json",
        "body": {"ticketId": "HAL-0001"},
    }
    assert result.http_ok is True
    assert result.payload == {"success": True, "ticket": {"id": "1"}}


@pytest.mark.anyio
async def test_absent_body_is_sent_as_empty_object() -> None:
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.content)
        return httpx.Response(200, json={"success": True})

    async with _transport(handler) as transport:
        await transport.send(RequestEnvelope("/api/red/list"))

    assert json.loads(bodies[0]) == {}


@pytest.mark.anyio
async def test_non_json_body_is_normalized_with_diagnostic() -> None:
    html = "<html>error</html>"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text=html, headers={"content-type": "text/html"})

    async with _transport(handler) as transport:
        result = await transport.send(RequestEnvelope("/api/tickets/create-general"))

    assert result.http_ok is False
    assert result.status_code == 500
    assert result.payload["success"] is False
    assert "Non-JSON response" in result.payload["error"]
    assert result.payload["error"] == (
        "Non-JSON response from /api/tickets/create-general "
        "(HTTP 500, content-type: text/html): <html>error</html>"
    )


@pytest.mark.anyio
async def test_non_json_preview_is_limited_to_200_chars() -> None:
    text = "E" * 150 + "F" * 150

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=text.encode())

    async with _transport(handler) as transport:
        result = await transport.send(RequestEnvelope("/api/red/get"))

    assert result.http_ok is True
    assert result.payload["error"].endswith(text[:200])
    assert "content-type: unknown" in result.payload["error"]


@pytest.mark.anyio
async def test_empty_body_normalizes_to_empty_object() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"")

    async with _transport(handler) as transport:
        result = await transport.send(RequestEnvelope("/api/red/validate"))

    assert result.http_ok is True
    assert result.payload == {}


@pytest.mark.anyio
async def test_json_null_normalizes_to_empty_object() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"null")

    async with _transport(handler) as transport:
        result = await transport.send(RequestEnvelope("/api/red/validate"))

    assert result.payload == {}


@pytest.mark.anyio
async def test_http_error_with_json_body_keeps_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"success": False, "error": "Ticket not found"})

    async with _transport(handler) as transport:
        result = await transport.send(RequestEnvelope("/api/tickets/get"))

    assert result.http_ok is False
    assert result.payload == {"success": False, "error": "Ticket not found"}


@pytest.mark.anyio
async def test_progress_callback_runs_before_request() -> None:
    order: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        order.append("request")
        return httpx.Response(200, json={"success": True})

    async def on_progress(message: str) -> None:
        order.append(f"progress:{message}")

    async with _transport(handler) as transport:
        await transport.send(
            RequestEnvelope("/api/tickets/get", progress_label="Fetching ticket 12…"),
            on_progress=on_progress,
        )
        await transport.send(RequestEnvelope("/api/tickets/get", progress_label="   "))

    assert order == ["progress:Fetching ticket 12…", "request", "request"]


@pytest.mark.anyio
async def test_progress_callback_failure_propagates_without_request() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append("request")
        return httpx.Response(200, json={"success": True})

    def on_progress(message: str) -> None:
        raise RuntimeError("ui gone")

    async with _transport(handler, on_progress=on_progress) as transport:
        with pytest.raises(RuntimeError, match="ui gone"):
            await transport.send(RequestEnvelope("/api/tickets/get", progress_label="x"))

    assert calls == []


@pytest.mark.anyio
async def test_connection_failure_raises_chained_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _transport(handler) as transport:
        with pytest.raises(HalConnectionError) as excinfo:
            await transport.send(RequestEnvelope("/api/tickets/get"))

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert excinfo.value.path == "/api/tickets/get"


@pytest.mark.anyio
async def test_internal_timer_aborts_slow_request() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"success": True})

    token = CancellationToken()
    async with _transport(handler) as transport:
        with pytest.raises(HalTimeoutError, match="HAL request timeout"):
            await transport.send(RequestEnvelope("/api/tickets/get", timeout_ms=0), token)

    assert token.listener_count == 0
    assert token.cancelled is False


@pytest.mark.anyio
async def test_external_cancellation_aborts_in_flight_request() -> None:
    started = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.sleep(5)
        return httpx.Response(200, json={"success": True})

    token = CancellationToken()
    async with _transport(handler) as transport:
        send = asyncio.ensure_future(
            transport.send(RequestEnvelope("/api/red/insert"), token)
        )
        await started.wait()
        assert token.listener_count == 1
        token.cancel("Turn time budget exhausted")
        with pytest.raises(OperationCancelled) as excinfo:
            await send

    assert excinfo.value.reason == "Turn time budget exhausted"
    assert token.listener_count == 0


@pytest.mark.anyio
async def test_already_cancelled_token_sends_nothing() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"success": True})

    token = CancellationToken()
    token.cancel("stop")
    async with _transport(handler) as transport:
        with pytest.raises(OperationCancelled):
            await transport.send(RequestEnvelope("/api/tickets/get"), token)

    assert calls == []


@pytest.mark.anyio
async def test_listener_is_removed_after_success_and_parse_failure() -> None:
    responses = iter(
        [
            httpx.Response(200, json={"success": True}),
            httpx.Response(502, text="Bad gateway"),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    token = CancellationToken()
    async with _transport(handler) as transport:
        await transport.send(RequestEnvelope("/api/tickets/get"), token)
        await transport.send(RequestEnvelope("/api/tickets/get"), token)

    assert token.listener_count == 0


@pytest.mark.anyio
async def test_transport_does_not_close_borrowed_client() -> None:
    client = httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
    )
    async with HalTransport(BASE_URL, client=client):
        pass

    assert client.is_closed is False
    await client.aclose()


@pytest.mark.anyio
async def test_borrowed_client_without_base_url_reaches_hal() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"success": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with HalTransport(BASE_URL + "/", client=client) as transport:
        result = await transport.send(RequestEnvelope("/api/tickets/get"))
    await client.aclose()

    assert result.payload == {"success": True}
    assert seen == ["https://hal.test/api/tickets/get"]


def test_url_for_joins_base_and_path() -> None:
    transport = HalTransport("https://hal.test/hal/", client=httpx.AsyncClient())

    assert transport.url_for("/api/red/list") == "https://hal.test/hal/api/red/list"
    assert transport.url_for("api/red/list") == "https://hal.test/hal/api/red/list"
    assert transport.url_for("https://other.test/x") == "https://other.test/x"


@pytest.mark.anyio
async def test_client_side_url_error_is_a_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid URL")

    async with _transport(handler) as transport:
        with pytest.raises(HalTransportError) as excinfo:
            await transport.send(RequestEnvelope("/api/tickets/get"))

    assert not isinstance(excinfo.value, HalConnectionError)
    assert isinstance(excinfo.value.__cause__, httpx.InvalidURL)
    assert excinfo.value.path == "/api/tickets/get"
