"""HttpLogger implementations.

SimpleHttpLogger writes one line per request and one per response through
the standard logging module, correlated by an incrementing tag.
"""

import itertools
import logging
import threading
from typing import Optional

from restpipe.domain.interfaces.http_logger import HttpLogger
from restpipe.domain.models.auth import mask_token
from restpipe.domain.models.common import LogTag
from restpipe.domain.models.http import RequestDescriptor, ResponseEnvelope

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_LENGTH = 200


class SimpleHttpLogger(HttpLogger):
    """Logs HTTP traffic at a fixed level, truncating long bodies."""

    def __init__(
        self,
        level: int = logging.INFO,
        max_body_length: int = DEFAULT_MAX_BODY_LENGTH,
        target: Optional[logging.Logger] = None,
    ):
        self.level = level
        self.max_body_length = max_body_length
        self._log = target or logger
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()

    def _next_tag(self) -> LogTag:
        with self._counter_lock:
            return LogTag(f"[{next(self._counter)}]")

    def _truncate(self, text: str) -> str:
        text = text.replace("\n", " ")
        if len(text) <= self.max_body_length:
            return text
        return text[:self.max_body_length] + f"... ({len(text) - self.max_body_length} more)"

    def request(self, request: RequestDescriptor) -> LogTag:
        tag = self._next_tag()
        auth = request.headers.get("Authorization")
        auth_note = f" auth={mask_token(auth.split(' ', 1)[-1])}" if auth else ""
        self._log.log(self.level, f"{tag} -> {request.method} {request.url}{auth_note}")
        if request.body is not None and self._log.isEnabledFor(logging.DEBUG):
            body = dict(request.body) if not isinstance(request.body, (str, bytes)) else request.body
            self._log.debug(f"{tag} -> body: {self._truncate(str(body))}")
        return tag

    def response(self, tag: LogTag, response: ResponseEnvelope) -> None:
        media_type = response.media_type or "no content type"
        size = len(response.body)
        message = f"{tag} <- {response.status_code} {media_type}, {size} chars"
        if response.body:
            message += f": {self._truncate(response.body)}"
        self._log.log(self.level, message)


class NoopHttpLogger(HttpLogger):
    """Logs nothing."""

    def request(self, request: RequestDescriptor) -> LogTag:
        return LogTag("")

    def response(self, tag: LogTag, response: ResponseEnvelope) -> None:
        pass
