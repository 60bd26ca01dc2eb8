"""The public client: builds requests and runs them through the pipeline.

An ApiClient is bound to one credential (and so to one identity). It shares
its rate limiter and token state between all of its requests, and can be
used concurrently from many asyncio tasks.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Union

from restpipe.core.services.request_pipeline import EventSink, RequestPipeline
from restpipe.core.session import ClientConfig, ClientSession
from restpipe.domain.errors import ApiError, ClientClosedError, HttpError, NoAuthenticatedUserError
from restpipe.domain.interfaces.auth_exchange import AuthorizationExchange
from restpipe.domain.interfaces.credential_store import CredentialStore
from restpipe.domain.interfaces.http_logger import HttpLogger
from restpipe.domain.interfaces.transport import StreamConnection, StreamListener, Transport
from restpipe.domain.models.auth import Credential
from restpipe.domain.models.common import Username
from restpipe.domain.models.http import RequestBuilder, RequestDescriptor, ResponseEnvelope
from restpipe.infrastructure.auth.token_manager import TokenManager
from restpipe.infrastructure.monitoring.http_logger import SimpleHttpLogger
from restpipe.infrastructure.resilience.error_classifier import ErrorClassifier
from restpipe.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ME_PATH = "/api/v1/me"

RequestTarget = Union[RequestDescriptor, Callable[[RequestBuilder], RequestBuilder]]


class ApiClient:
    """Authenticated, rate-limited client for a REST API."""

    def __init__(
        self,
        transport: Transport,
        token_manager: TokenManager,
        config: Optional[ClientConfig] = None,
        http_logger: Optional[HttpLogger] = None,
        event_sink: Optional[EventSink] = None,
        classifier: Optional[ErrorClassifier] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initializes the client. Prefer `ApiClient.create` for a ready-to-use client.

        Args:
            transport: Sends requests over the network.
            token_manager: Owns the credential this client uses.
            config: Client configuration (defaults if None).
            http_logger: Logs each attempt when enabled (SimpleHttpLogger if None).
            event_sink: Receives request lifecycle events.
            classifier: Response classifier (ErrorClassifier if None).
            rate_limiter: Shared rate limiter (built from config if None).
        """
        self.transport = transport
        self.session = ClientSession(token_manager, config, rate_limiter)
        self.pipeline = RequestPipeline(
            self.session,
            transport,
            classifier=classifier or ErrorClassifier(),
            http_logger=http_logger or SimpleHttpLogger(),
            event_sink=event_sink,
        )

    @classmethod
    async def create(
        cls,
        transport: Transport,
        credential: Credential,
        exchange: Optional[AuthorizationExchange] = None,
        store: Optional[CredentialStore] = None,
        username: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        userless: bool = False,
        force_renew: bool = False,
        **kwargs: Any,
    ) -> "ApiClient":
        """Creates a client and resolves the identity its credential belongs to.

        Args:
            transport: Sends requests over the network.
            credential: Initial credential.
            exchange: Token endpoint for renewal and revocation.
            store: Persists credentials per identity.
            username: Known identity; skips the lookup request when given.
            config: Client configuration.
            userless: The credential has no user behind it; skips the lookup.
            force_renew: Renew before the first request regardless of
                expiration (for placeholder access tokens).
            **kwargs: Passed to the constructor.

        Returns:
            A client whose credential has been persisted under its identity.
        """
        config = config or ClientConfig()
        token_manager = TokenManager(
            exchange=exchange,
            store=store,
            credential=credential,
            renewal_margin=config.renewal_margin,
        )
        if force_renew:
            token_manager.force_renew_once()
        client = cls(transport, token_manager, config=config, **kwargs)

        if username is None and not userless:
            try:
                username = await client.identify()
            except BaseException:
                # The client owns transport and exchange from here on
                await client.close()
                raise
        token_manager.username = username
        # May be the renewed credential if the lookup renewed it
        token_manager.update(token_manager.current())
        logger.info(f"Client ready for {username or 'an unknown identity'}")
        return client

    # --- Identity ---

    @property
    def token_manager(self) -> TokenManager:
        return self.session.token_manager

    @property
    def config(self) -> ClientConfig:
        return self.session.config

    @property
    def rate_limiter(self) -> RateLimiter:
        return self.session.rate_limiter

    @property
    def username(self) -> Optional[Username]:
        return self.token_manager.username

    @property
    def logged_out(self) -> bool:
        return self.session.logged_out

    async def identify(self) -> Optional[str]:
        """Asks the API which user the credential belongs to.

        Returns:
            The user name, or None if the API rejects the lookup.
        """
        try:
            response = await self.request(lambda builder: builder.path(ME_PATH))
            name = response.json().get("name")
        except (ApiError, HttpError) as e:
            logger.warning(f"Could not determine the authenticated user: {e}")
            return None
        except (ValueError, AttributeError) as e:
            logger.warning(f"Unexpected response from {ME_PATH}: {e}")
            return None
        if not isinstance(name, str) or not name:
            logger.warning(f"Response from {ME_PATH} has no user name")
            return None
        return name

    def can_access(self, scope: str) -> bool:
        """True if the current credential grants `scope` (or all scopes)."""
        credential = self.token_manager.current()
        return credential is not None and credential.has_scope(scope)

    def require_authenticated_user(self) -> Username:
        """Returns the logged-in user name.

        Raises:
            NoAuthenticatedUserError: If the identity is unknown.
        """
        username = self.username
        if username is None:
            raise NoAuthenticatedUserError("This operation requires a logged-in user")
        return username

    # --- Requests ---

    def request_stub(self) -> RequestBuilder:
        """A builder pre-filled with base URL, User-Agent and current Authorization."""
        config = self.config
        builder = (RequestBuilder()
                   .secure(config.secure)
                   .host(config.host)
                   .header("User-Agent", config.user_agent))
        access_token = self.token_manager.access_token
        if access_token:
            builder.header("Authorization", f"bearer {access_token}")
        return builder

    async def request(self, target: RequestTarget, timeout: Optional[float] = None) -> ResponseEnvelope:
        """Executes a request.

        Args:
            target: A finished RequestDescriptor, or a function that
                configures a `request_stub()` builder.
            timeout: Overall deadline in seconds across all attempts. On
                expiry the request is cancelled and asyncio.TimeoutError
                is raised.

        Returns:
            The successful response.
        """
        if isinstance(target, RequestDescriptor):
            request = target
        else:
            request = target(self.request_stub()).build()

        if timeout is None:
            return await self.pipeline.execute(request)
        return await asyncio.wait_for(self.pipeline.execute(request), timeout)

    async def stream(self, url: str, listener: StreamListener) -> StreamConnection:
        """Opens a long-lived stream authenticated like a normal request."""
        if self.logged_out:
            raise ClientClosedError()
        headers = {"User-Agent": self.config.user_agent}
        access_token = self.token_manager.access_token
        if access_token:
            headers["Authorization"] = f"bearer {access_token}"
        return await self.transport.connect(url, listener, headers=headers)

    # --- Lifecycle ---

    def reconfigure(self, **changes: Any) -> ClientConfig:
        """Changes configuration for requests that start afterwards."""
        return self.session.reconfigure(**changes)

    async def logout(self) -> None:
        """Revokes the tokens, forgets the stored credential and disables the client.

        The client is disabled even if revocation fails; the failure is
        then re-raised.
        """
        if self.logged_out:
            return
        try:
            await self.token_manager.revoke()
        finally:
            self.session.mark_logged_out()
            logger.info(f"Logged out {self.username or 'client'}")

    async def close(self) -> None:
        await self.transport.aclose()
        await self.token_manager.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "logged out" if self.logged_out else "active"
        return f"ApiClient(username={self.username!r}, base_url={self.config.base_url!r}, {state})"
