"""OAuth2 token endpoint client built on httpx.

Implements the AuthorizationExchange interface: refresh-token grants and
token revocation, authenticated with HTTP basic auth using the app's client
id and secret (the secret is empty for installed apps).
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import httpx

from restpipe.domain.errors import RenewalError
from restpipe.domain.interfaces.auth_exchange import AuthorizationExchange
from restpipe.domain.models.auth import Credential, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
DEFAULT_REVOKE_URL = "https://www.reddit.com/api/v1/revoke_token"
DEFAULT_TIMEOUT_SECONDS = 30.0


class HttpxAuthorizationExchange(AuthorizationExchange):
    """AuthorizationExchange talking to an OAuth2 token endpoint over httpx."""

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        user_agent: str = "restpipe",
        token_url: str = DEFAULT_TOKEN_URL,
        revoke_url: str = DEFAULT_REVOKE_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initializes the exchange.

        Args:
            client_id: OAuth2 client id of the app.
            client_secret: OAuth2 client secret ('' for installed apps).
            user_agent: User-Agent sent with every call.
            token_url: Token endpoint for refresh grants.
            revoke_url: Token revocation endpoint.
            client: Optional shared httpx.AsyncClient (created if None).
            timeout: Timeout in seconds for a client created here.
            clock: Reference time for computing expirations.
        """
        if not client_id:
            raise ValueError("OAuth2 client id not provided.")
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_agent = user_agent
        self.token_url = token_url
        self.revoke_url = revoke_url
        self._clock = clock
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def _post(self, url: str, data: dict) -> httpx.Response:
        return await self._client.post(
            url,
            data=data,
            auth=(self.client_id, self.client_secret),
            headers={"User-Agent": self.user_agent},
        )

    async def refresh(self, credential: Credential) -> Credential:
        """Performs a refresh_token grant for `credential`."""
        if not credential.refresh_token:
            raise RenewalError("Cannot renew: credential has no refresh token")

        try:
            response = await self._post(self.token_url, {
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token,
            })
        except httpx.HTTPError as e:
            raise RenewalError(f"Token endpoint unreachable: {type(e).__name__}: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            raise RenewalError(
                f"Token exchange rejected (HTTP {response.status_code}): {payload['error']}",
                status_code=response.status_code,
                error=str(payload["error"]),
            )
        if not response.is_success:
            raise RenewalError(
                f"Token exchange failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(payload, dict):
            raise RenewalError("Token endpoint returned a non-JSON body", status_code=response.status_code)

        try:
            return Credential.from_token_response(payload, self._clock())
        except (KeyError, TypeError, ValueError) as e:
            raise RenewalError(f"Malformed token response: {e}", status_code=response.status_code) from e

    async def revoke(self, token: str, token_type_hint: str) -> None:
        """Revokes `token` at the revocation endpoint."""
        try:
            response = await self._post(self.revoke_url, {
                "token": token,
                "token_type_hint": token_type_hint,
            })
        except httpx.HTTPError as e:
            raise RenewalError(f"Revocation endpoint unreachable: {type(e).__name__}: {e}") from e
        if not response.is_success:
            raise RenewalError(
                f"Token revocation failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(f"Revoked {token_type_hint}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
