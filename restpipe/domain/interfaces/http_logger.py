"""Interface for HTTP request/response logging.

Purely observational: implementations must never alter control flow, and
the pipeline shields requests from logger failures.
"""

import abc

from ..models.common import LogTag
from ..models.http import RequestDescriptor, ResponseEnvelope


class HttpLogger(abc.ABC):
    """Abstract Base Class for HTTP traffic loggers."""

    @abc.abstractmethod
    def request(self, request: RequestDescriptor) -> LogTag:
        """Logs an outgoing request and returns a tag for its response."""
        pass

    @abc.abstractmethod
    def response(self, tag: LogTag, response: ResponseEnvelope) -> None:
        """Logs the response belonging to `tag`."""
        pass
