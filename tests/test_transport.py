from __future__ import annotations

import asyncio
import ssl

import httpx
import pytest

from dispatcher import deliver
from models import PushPayload
from transport import HttpxTransport, PushRequest, TransportFailure, TransportTimeout

REQUEST = PushRequest(
    endpoint="https://push.example.com/x", headers={"TTL": "60"}, body=b"cipher"
)


def _transport(handler) -> HttpxTransport:
    return HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.anyio
async def test_posts_body_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["ttl"] = request.headers["TTL"]
        seen["body"] = request.content
        return httpx.Response(201)

    response = await _transport(handler).send(REQUEST)

    assert response.status_code == 201
    assert seen == {"method": "POST", "ttl": "60", "body": b"cipher"}


@pytest.mark.anyio
async def test_timeout_is_reported_as_transport_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransportTimeout):
        await _transport(handler).send(REQUEST)


@pytest.mark.anyio
async def test_connection_errors_are_labelled():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportFailure) as excinfo:
        await _transport(handler).send(REQUEST)
    assert excinfo.value.label == "io_error"


@pytest.mark.anyio
async def test_tls_errors_are_labelled():
    def handler(request):
        try:
            raise ssl.SSLError("certificate verify failed")
        except ssl.SSLError as exc:
            raise httpx.ConnectError("tls", request=request) from exc

    with pytest.raises(TransportFailure) as excinfo:
        await _transport(handler).send(REQUEST)
    assert excinfo.value.label == "tls_error"


@pytest.mark.anyio
async def test_protocol_errors_are_labelled():
    def handler(request):
        raise httpx.RemoteProtocolError("garbled", request=request)

    with pytest.raises(TransportFailure) as excinfo:
        await _transport(handler).send(REQUEST)
    assert excinfo.value.label == "invalid_response"


@pytest.mark.anyio
async def test_injected_client_is_left_open():
    mock = httpx.MockTransport(lambda request: httpx.Response(204))
    client = httpx.AsyncClient(transport=mock)
    transport = HttpxTransport(client)

    await transport.aclose()

    assert not client.is_closed
    await client.aclose()


@pytest.mark.anyio
async def test_owned_client_leaves_the_deadline_to_the_caller():
    transport = HttpxTransport()

    assert transport._client.timeout == httpx.Timeout(None)
    await transport.aclose()


@pytest.mark.anyio
async def test_slow_push_service_within_deadline_is_delivered(identity, make_subscription):
    subscription, _ = make_subscription()

    async def handler(request):
        await asyncio.sleep(0.3)
        return httpx.Response(201)

    payload = PushPayload(body=b"late", ttl=60)

    transport = _transport(handler)

    outcome = await deliver(identity, transport, subscription, payload, timeout=2.0)

    assert outcome.ok
