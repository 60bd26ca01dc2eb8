"""Exception taxonomy for request execution.

Callers receive either a usable response or exactly one of these errors,
carrying enough detail (status code, decoded error fields) to decide whether
to retry, re-authenticate or give up.
"""

from typing import List, Optional

from .models.common import ApiErrorEntry
from .models.http import ResponseEnvelope


class RestPipeError(Exception):
    """Base class for all errors raised by restpipe."""


class ClientClosedError(RestPipeError):
    """The client has been logged out and can no longer send requests."""

    def __init__(self, message: str = "This client is logged out and should not be used anymore"):
        super().__init__(message)


class RenewalError(RestPipeError):
    """The refresh-token exchange was rejected or could not be performed."""

    def __init__(self, message: str, status_code: Optional[int] = None, error: Optional[str] = None):
        self.status_code = status_code
        self.error = error
        super().__init__(message)


class NoAuthenticatedUserError(RestPipeError):
    """An operation required a known, logged-in user."""


class TransportError(RestPipeError):
    """A connectivity-level failure (DNS, TLS, connection reset, timeout)."""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        self.original_exception = original_exception
        super().__init__(message)


class HttpError(RestPipeError):
    """A non-2xx response with no structured API error in its body."""

    def __init__(self, response: ResponseEnvelope, message: Optional[str] = None):
        self.response = response
        self.status_code = response.status_code
        super().__init__(message or _describe(response))


class TransientServerError(HttpError):
    """A 5xx response that was still failing after all retries."""

    def __init__(self, response: ResponseEnvelope, attempts: int):
        self.attempts = attempts
        super().__init__(response, f"{_describe(response)} (after {attempts} attempt{'s' if attempts != 1 else ''})")


class ApiError(RestPipeError):
    """A structured API error decoded from a JSON body, whatever the HTTP status."""

    def __init__(
        self,
        code: str,
        explanation: str,
        field: Optional[str] = None,
        details: Optional[List[ApiErrorEntry]] = None,
        response: Optional[ResponseEnvelope] = None,
    ):
        self.code = code
        self.explanation = explanation
        self.field = field
        self.details = details or [ApiErrorEntry(code=code, explanation=explanation, field=field)]
        self.response = response
        self.status_code = response.status_code if response is not None else None
        message = f"API returned error: {code}: {explanation}"
        if field:
            message += f" (field: {field})"
        super().__init__(message)


def _describe(response: ResponseEnvelope) -> str:
    url = response.request.url if response.request is not None else "<unknown url>"
    snippet = response.body[:200]
    return f"HTTP {response.status_code} for {url}: {snippet}" if snippet else f"HTTP {response.status_code} for {url}"
