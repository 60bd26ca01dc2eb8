"""Interface for the HTTP transport.

The transport owns connection pooling, TLS and socket I/O. The core only
hands it finished RequestDescriptors and receives ResponseEnvelopes.
"""

import abc
from typing import Mapping, Optional

from ..models.http import RequestDescriptor, ResponseEnvelope


class StreamListener(abc.ABC):
    """Receives events from a persistent streaming connection."""

    def on_open(self, connection: "StreamConnection") -> None:
        """Called once the connection is established."""
        pass

    @abc.abstractmethod
    def on_message(self, connection: "StreamConnection", message: str) -> None:
        """Called for every message received on the connection."""
        pass

    def on_closed(self, connection: "StreamConnection", reason: Optional[str] = None) -> None:
        """Called when the connection ends normally or is closed locally."""
        pass

    def on_failure(self, connection: "StreamConnection", error: BaseException) -> None:
        """Called when the connection fails."""
        pass


class StreamConnection(abc.ABC):
    """Handle on an open streaming connection."""

    @property
    @abc.abstractmethod
    def url(self) -> str:
        pass

    @property
    @abc.abstractmethod
    def closed(self) -> bool:
        pass

    @abc.abstractmethod
    async def close(self) -> None:
        """Closes the connection. Closing twice is a no-op."""
        pass


class Transport(abc.ABC):
    """Abstract Base Class for sending HTTP requests."""

    @abc.abstractmethod
    async def execute(self, request: RequestDescriptor) -> ResponseEnvelope:
        """Sends a request and returns the completed response.

        Any HTTP status is a valid response; only connectivity problems fail.

        Raises:
            TransportError: If no response could be obtained.
        """
        pass

    @abc.abstractmethod
    async def connect(
        self, url: str, listener: StreamListener, headers: Optional[Mapping[str, str]] = None
    ) -> StreamConnection:
        """Opens a persistent streaming connection to `url`.

        Used outside the rate-limit and retry path.
        """
        pass

    async def aclose(self) -> None:
        """Releases pooled connections."""
        pass
