"""Transport implementation on top of httpx.

Owns connection pooling and socket I/O. Any HTTP status is returned as a
ResponseEnvelope; only connectivity failures raise (as TransportError).
"""

import asyncio
import contextlib
import logging
from typing import Any, Dict, Mapping, Optional, Set

import httpx

from restpipe.domain.errors import TransportError
from restpipe.domain.interfaces.transport import StreamConnection, StreamListener, Transport
from restpipe.domain.models.http import Headers, RequestDescriptor, ResponseEnvelope

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_CONNECTIONS = 20
DEFAULT_MAX_KEEPALIVE = 10


class HttpxStreamConnection(StreamConnection):
    """A streaming GET whose lines are delivered to a StreamListener."""

    def __init__(self, url: str, listener: StreamListener):
        self._url = url
        self._listener = listener
        self._closed = False
        self._task: Optional[asyncio.Task] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, client: httpx.AsyncClient, headers: Mapping[str, str]) -> None:
        self._task = asyncio.create_task(self._pump(client, dict(headers)))

    async def _pump(self, client: httpx.AsyncClient, headers: Dict[str, str]) -> None:
        try:
            async with client.stream("GET", self._url, headers=headers) as response:
                if not response.is_success:
                    raise TransportError(f"Stream to {self._url} rejected with HTTP {response.status_code}")
                self._listener.on_open(self)
                async for line in response.aiter_lines():
                    if line:
                        self._listener.on_message(self, line)
        except asyncio.CancelledError:
            self._finish("closed")
            raise
        except Exception as e:
            logger.warning(f"Stream to {self._url} failed: {type(e).__name__}: {e}")
            self._closed = True
            self._listener.on_failure(self, e)
        else:
            self._finish("stream ended")

    def _finish(self, reason: str) -> None:
        self._closed = True
        self._listener.on_closed(self, reason)

    async def close(self) -> None:
        if self._task is None or self._task.done():
            self._closed = True
            return
        self._task.cancel()
        if self._task is asyncio.current_task():
            # Closed from inside a listener callback
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class HttpxTransport(Transport):
    """Transport backed by a pooled httpx.AsyncClient."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_keepalive: int = DEFAULT_MAX_KEEPALIVE,
    ):
        """Initializes the transport.

        Args:
            client: Optional preconfigured client (e.g. with a MockTransport).
            timeout: Default timeout in seconds for a client created here.
            max_connections: Pool size for a client created here.
            max_keepalive: Keep-alive connections for a client created here.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            limits=httpx.Limits(
                max_keepalive_connections=max_keepalive,
                max_connections=max_connections,
                keepalive_expiry=30.0,
            ),
            timeout=httpx.Timeout(timeout, connect=10.0),
        )
        self._streams: Set[HttpxStreamConnection] = set()
        logger.debug(f"HttpxTransport initialized (max_connections={max_connections}, timeout={timeout}s)")

    async def execute(self, request: RequestDescriptor) -> ResponseEnvelope:
        kwargs: Dict[str, Any] = {}
        if isinstance(request.body, Mapping):
            kwargs["data"] = dict(request.body)
        elif isinstance(request.body, str):
            kwargs["content"] = request.body.encode("utf-8")
        elif request.body is not None:
            kwargs["content"] = request.body

        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=dict(request.headers.items()),
                **kwargs,
            )
        except httpx.RequestError as e:
            raise TransportError(f"{request.method} {request.url} failed: {type(e).__name__}: {e}", e) from e

        return ResponseEnvelope(
            status_code=response.status_code,
            headers=Headers(response.headers.multi_items()),
            body=response.text,
            content_type=response.headers.get("content-type"),
            request=request,
        )

    async def connect(self, url: str, listener: StreamListener, headers: Optional[Mapping[str, str]] = None) -> StreamConnection:
        connection = HttpxStreamConnection(url, listener)
        self._streams.add(connection)
        connection.start(self._client, headers or {})
        logger.info(f"Opened stream to {url}")
        return connection

    async def aclose(self) -> None:
        for connection in list(self._streams):
            await connection.close()
        self._streams.clear()
        if self._owns_client:
            await self._client.aclose()
