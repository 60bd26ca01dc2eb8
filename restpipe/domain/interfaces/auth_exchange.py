"""Interface for the remote authorization endpoint.

Exchanges refresh tokens for new credentials and revokes tokens on logout.
"""

import abc

from ..models.auth import Credential


class AuthorizationExchange(abc.ABC):
    """Abstract Base Class for the OAuth2 token endpoint."""

    @abc.abstractmethod
    async def refresh(self, credential: Credential) -> Credential:
        """Exchanges the credential's refresh token for a fresh credential.

        The returned credential may omit the refresh token; callers keep the
        previous one in that case.

        Raises:
            RenewalError: If the exchange is rejected or cannot be performed.
        """
        pass

    @abc.abstractmethod
    async def revoke(self, token: str, token_type_hint: str) -> None:
        """Revokes an access or refresh token.

        Args:
            token: The token to revoke.
            token_type_hint: 'access_token' or 'refresh_token'.
        """
        pass

    async def aclose(self) -> None:
        """Releases any network resources held by the exchange."""
        pass
