import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from restpipe.domain.errors import TransportError
from restpipe.domain.interfaces.transport import StreamListener
from restpipe.domain.models.http import RequestDescriptor
from restpipe.infrastructure.http.httpx_transport import HttpxTransport


def build_transport(handler) -> HttpxTransport:
    return HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class RecordingListener(StreamListener):
    def __init__(self):
        self.opened = False
        self.messages = []
        self.closed_reason = None
        self.failure = None
        self.done = asyncio.Event()

    def on_open(self, connection):
        self.opened = True

    def on_message(self, connection, message):
        self.messages.append(message)

    def on_closed(self, connection, reason=None):
        self.closed_reason = reason
        self.done.set()

    def on_failure(self, connection, error):
        self.failure = error
        self.done.set()


@pytest.mark.asyncio
async def test_execute_returns_envelope():
    def handler(request):
        assert request.headers["Authorization"] == "bearer abc"
        return httpx.Response(200, json={"name": "alice"}, headers={"X-Ratelimit-Remaining": "599"})

    transport = build_transport(handler)
    request = RequestDescriptor(url="https://api.example.com/api/v1/me", headers={"Authorization": "bearer abc"})

    response = await transport.execute(request)

    assert response.status_code == 200
    assert response.json() == {"name": "alice"}
    assert response.media_type == "application/json"
    assert response.headers["x-ratelimit-remaining"] == "599"
    assert response.request is request


@pytest.mark.asyncio
async def test_form_body_is_url_encoded():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["type"] = request.headers["Content-Type"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200)

    request = RequestDescriptor(url="https://api.example.com/api/comment", method="POST", body={"text": "hi there"})

    await build_transport(handler).execute(request)

    assert seen["method"] == "POST"
    assert seen["type"] == "application/x-www-form-urlencoded"
    assert seen["form"] == {"text": ["hi there"]}


@pytest.mark.asyncio
async def test_server_error_is_returned_not_raised():
    transport = build_transport(lambda request: httpx.Response(503, text="busy"))

    response = await transport.execute(RequestDescriptor(url="https://api.example.com/"))

    assert response.status_code == 503
    assert response.body == "busy"


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("name resolution failed", request=request)

    with pytest.raises(TransportError) as excinfo:
        await build_transport(handler).execute(RequestDescriptor(url="https://api.example.com/"))

    assert isinstance(excinfo.value.original_exception, httpx.ConnectError)


@pytest.mark.asyncio
async def test_stream_delivers_lines_then_closes():
    transport = build_transport(lambda request: httpx.Response(200, content=b"first\n\nsecond\n"))
    listener = RecordingListener()

    connection = await transport.connect("https://stream.example.com/live", listener, headers={"User-Agent": "tests"})
    await asyncio.wait_for(listener.done.wait(), timeout=1)

    assert listener.opened
    assert listener.messages == ["first", "second"]
    assert listener.closed_reason == "stream ended"
    assert connection.closed
    await transport.aclose()


@pytest.mark.asyncio
async def test_rejected_stream_reports_failure():
    transport = build_transport(lambda request: httpx.Response(403))
    listener = RecordingListener()

    connection = await transport.connect("https://stream.example.com/live", listener)
    await asyncio.wait_for(listener.done.wait(), timeout=1)

    assert not listener.opened
    assert isinstance(listener.failure, TransportError)
    assert connection.closed


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    transport = HttpxTransport(client=client)

    await transport.aclose()

    assert not client.is_closed
    await client.aclose()
