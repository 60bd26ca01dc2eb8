"""Client configuration and per-client session state.

A ClientSession is created once per client. It holds the token manager, the
shared rate limiter, the validated configuration and the one-way
logged-out flag.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, Optional
from urllib.parse import urlsplit

from restpipe.domain.models.resilience import DEFAULT_RATE_CAPACITY, DEFAULT_RATE_PER_SECOND
from restpipe.infrastructure.auth.token_manager import TokenManager
from restpipe.infrastructure.config.settings import get_bool, get_config, get_str
from restpipe.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://oauth.reddit.com"
DEFAULT_USER_AGENT = "python:restpipe:v0.1.0"
DEFAULT_RETRY_LIMIT = 5
DEFAULT_RENEWAL_MARGIN_SECONDS = 60.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ClientConfig:
    """Validated client configuration.

    Attributes:
        base_url: Scheme and host requests are built against.
        user_agent: User-Agent header sent with every request.
        retry_limit: Retries for 5xx responses; values below 1 disable retrying.
        auto_renew: Renew the access token before it expires.
        log_http: Log every request/response through the HTTP logger.
        rate_capacity: Rate limiter burst size.
        rate_per_second: Rate limiter refill rate.
        renewal_margin_seconds: Renew this long before expiration.
        request_timeout_seconds: Transport timeout.
    """
    base_url: str = DEFAULT_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    retry_limit: int = DEFAULT_RETRY_LIMIT
    auto_renew: bool = True
    log_http: bool = True
    rate_capacity: int = DEFAULT_RATE_CAPACITY
    rate_per_second: float = DEFAULT_RATE_PER_SECOND
    renewal_margin_seconds: float = DEFAULT_RENEWAL_MARGIN_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        parts = urlsplit(self.base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"base_url must be an absolute http(s) URL, got {self.base_url!r}")
        if parts.path not in ("", "/") or parts.query:
            raise ValueError(f"base_url must not contain a path or query, got {self.base_url!r}")
        if not self.user_agent:
            raise ValueError("user_agent must not be empty")
        if self.retry_limit < 0:
            raise ValueError("retry_limit must not be negative")
        if self.rate_capacity < 1:
            raise ValueError("rate_capacity must be at least 1")
        if self.rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if self.renewal_margin_seconds < 0:
            raise ValueError("renewal_margin_seconds must not be negative")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")

    @property
    def renewal_margin(self) -> timedelta:
        return timedelta(seconds=self.renewal_margin_seconds)

    @property
    def secure(self) -> bool:
        return urlsplit(self.base_url).scheme == "https"

    @property
    def host(self) -> str:
        return urlsplit(self.base_url).netloc

    @classmethod
    def from_settings(cls) -> "ClientConfig":
        """Builds a config from the configuration layer, falling back to defaults."""
        return cls(
            base_url=get_str('api.base_url', DEFAULT_BASE_URL),
            user_agent=get_str('api.user_agent', DEFAULT_USER_AGENT),
            retry_limit=int(get_config('api.retry_limit', DEFAULT_RETRY_LIMIT)),
            auto_renew=get_bool('api.auto_renew', True),
            log_http=get_bool('api.log_http', True),
            rate_capacity=int(get_config('api.rate_limit.capacity', DEFAULT_RATE_CAPACITY)),
            rate_per_second=float(get_config('api.rate_limit.per_second', DEFAULT_RATE_PER_SECOND)),
            renewal_margin_seconds=float(get_config('api.renewal_margin_seconds', DEFAULT_RENEWAL_MARGIN_SECONDS)),
            request_timeout_seconds=float(get_config('api.timeout_seconds', DEFAULT_REQUEST_TIMEOUT_SECONDS)),
        )


class ClientSession:
    """Process-scoped state shared by every request of one client."""

    def __init__(
        self,
        token_manager: TokenManager,
        config: Optional[ClientConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.token_manager = token_manager
        self._config = config or ClientConfig()
        self.token_manager.renewal_margin = self._config.renewal_margin
        self.rate_limiter = rate_limiter or RateLimiter(self._config.rate_capacity, self._config.rate_per_second)
        self._logged_out = False
        self._lock = threading.Lock()

    @property
    def config(self) -> ClientConfig:
        """The current configuration. Requests snapshot this when they start."""
        return self._config

    def reconfigure(self, **changes: Any) -> ClientConfig:
        """Replaces the configuration with a validated copy.

        Changing the rate parameters installs a fresh, full rate limiter.

        Raises:
            ValueError: If the resulting configuration is invalid.
            TypeError: If a change names an unknown field.
        """
        with self._lock:
            updated = replace(self._config, **changes)
            if (updated.rate_capacity, updated.rate_per_second) != (self._config.rate_capacity, self._config.rate_per_second):
                self.rate_limiter = RateLimiter(updated.rate_capacity, updated.rate_per_second)
            self.token_manager.renewal_margin = updated.renewal_margin
            self._config = updated
        logger.info(f"Client reconfigured: {changes}")
        return updated

    @property
    def logged_out(self) -> bool:
        return self._logged_out

    def mark_logged_out(self) -> None:
        """Permanently disables the session. There is no way back."""
        with self._lock:
            self._logged_out = True
