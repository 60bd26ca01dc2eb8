"""Credential lifecycle management.

The TokenManager is the single source of truth for which credential is
used right now and whether it is still good. It renews through an
AuthorizationExchange and persists results through a CredentialStore.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from restpipe.domain.errors import RenewalError
from restpipe.domain.interfaces.auth_exchange import AuthorizationExchange
from restpipe.domain.interfaces.credential_store import CredentialStore
from restpipe.domain.models.auth import Credential, ForcedRenewal, utcnow
from restpipe.domain.models.common import AccessToken, Username

logger = logging.getLogger(__name__)

DEFAULT_RENEWAL_MARGIN = timedelta(seconds=60)


class TokenManager:
    """Owns the current Credential and its renewal."""

    def __init__(
        self,
        exchange: Optional[AuthorizationExchange] = None,
        store: Optional[CredentialStore] = None,
        credential: Optional[Credential] = None,
        username: Optional[str] = None,
        renewal_margin: timedelta = DEFAULT_RENEWAL_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initializes the TokenManager.

        Args:
            exchange: Remote endpoint used to renew and revoke tokens. Without
                one, renewal is unavailable.
            store: Optional persistent store for credentials.
            credential: Initial credential (installed without persisting).
            username: Identity the credential belongs to, if known.
            renewal_margin: Renew when the credential expires within this margin.
            clock: Returns the current UTC time.
        """
        self._exchange = exchange
        self.store = store
        self._current = credential
        self._username = Username(username) if username else None
        self.renewal_margin = renewal_margin
        self._clock = clock
        self._forced = ForcedRenewal.IDLE
        self._renew_lock = asyncio.Lock()
        # Counts finished exchanges so requests that waited on the lock can
        # tell whether a renewal completed (or failed) meanwhile.
        self._completed = 0
        self._last_error: Optional[RenewalError] = None

    # --- State ---

    def current(self) -> Optional[Credential]:
        """Returns the active credential. Never blocks."""
        return self._current

    @property
    def access_token(self) -> Optional[AccessToken]:
        return self._current.access_token if self._current is not None else None

    @property
    def username(self) -> Optional[Username]:
        return self._username

    @username.setter
    def username(self, value: Optional[str]) -> None:
        self._username = Username(value) if value else None

    @property
    def forced_renewal(self) -> ForcedRenewal:
        return self._forced

    def needs_renewal(self) -> bool:
        """True if the credential expires within the safety margin, or there is none."""
        if self._current is None:
            return True
        return self._current.expires_within(self.renewal_margin, self._clock())

    def can_renew(self) -> bool:
        """True iff a refresh token is present and there is an exchange to use it with."""
        return self._current is not None and self._current.renewable and self._exchange is not None

    def force_renew_once(self) -> None:
        """Makes the next request renew regardless of expiration.

        For credentials whose access token is a placeholder and only the
        refresh token is real.
        """
        logger.debug("Forced renewal requested for the next request")
        self._forced = ForcedRenewal.PENDING

    # --- Installation and persistence ---

    def update(self, credential: Credential) -> None:
        """Installs `credential` as current and persists it if possible."""
        if credential.expiration <= self._clock():
            logger.debug("Installed credential is already expired; it will be renewed before use if possible")
        self._current = credential
        self._persist(credential)

    def _persist(self, credential: Credential) -> None:
        if self.store is None or self._username is None:
            return
        try:
            self.store.store_latest(self._username, credential)
            if credential.refresh_token:
                self.store.store_refresh_token(self._username, credential.refresh_token)
        except Exception as e:
            # The live credential is already installed; a store failure only loses durability
            logger.error(f"Failed to persist credential for '{self._username}': {e}", exc_info=True)

    def recover_from_store(self, username: Optional[str] = None) -> bool:
        """Re-adopts a renewable credential from the store.

        Only acts when the in-memory credential has lost its refresh token
        but the store holds both a credential and a refresh token for the
        same identity.

        Returns:
            True if a stored credential was installed.
        """
        if self._current is not None and self._current.renewable:
            return False
        name = Username(username) if username else self._username
        if self.store is None or name is None:
            return False

        latest = self.store.fetch_latest(name)
        refresh_token = self.store.fetch_refresh_token(name)
        if latest is None or refresh_token is None:
            logger.debug(f"No renewable credential stored for '{name}'")
            return False

        logger.info(f"Recovered renewable credential for '{name}' from the credential store")
        self.update(latest.with_refresh_token(refresh_token))
        return True

    # --- Renewal ---

    async def renew(self) -> Credential:
        """Exchanges the refresh token for a new credential and installs it.

        Raises:
            RenewalError: If there is nothing to renew with or the exchange
                is rejected. The previous credential stays current.
        """
        async with self._renew_lock:
            return await self._renew_locked()

    async def renew_if_needed(self, auto_renew: bool) -> Optional[Credential]:
        """Renews when forced, or when auto-renew is on and renewal is due and possible.

        Concurrent callers converge on one exchange: whoever waited on the
        lock while another caller renewed gets that outcome instead of
        exchanging the (possibly single-use) refresh token again.

        Returns:
            The new credential if one was installed for this call, else None.

        Raises:
            RenewalError: If the renewal this call depends on failed.
        """
        if not self._should_renew(auto_renew):
            return None

        observed = self._current
        ticket = self._completed
        async with self._renew_lock:
            if self._current is not observed:
                logger.debug("Credential was renewed by a concurrent request")
                return self._current
            if self._completed != ticket and self._last_error is not None:
                raise self._last_error
            if not self._should_renew(auto_renew):
                return None
            return await self._renew_locked()

    def _should_renew(self, auto_renew: bool) -> bool:
        if self._forced is ForcedRenewal.PENDING:
            return True
        return auto_renew and self.needs_renewal() and self.can_renew()

    async def _renew_locked(self) -> Credential:
        credential = self._current
        if credential is None or not credential.refresh_token:
            raise RenewalError("Cannot renew: no refresh token available")
        if self._exchange is None:
            raise RenewalError("Cannot renew: no authorization exchange configured")

        forced = self._forced is ForcedRenewal.PENDING
        logger.info(f"Renewing access token{' (forced)' if forced else ''}")
        self._last_error = None
        try:
            renewed = await self._exchange.refresh(credential)
            if not renewed.refresh_token:
                # Refresh responses usually omit the refresh token; it stays valid
                renewed = renewed.with_refresh_token(credential.refresh_token)
            if renewed.expiration <= self._clock():
                raise RenewalError("Authorization server returned an already expired credential")
        except RenewalError as e:
            logger.warning(f"Access token renewal failed: {e}")
            self._last_error = e
            raise
        finally:
            self._completed += 1

        self.update(renewed)
        if forced:
            self._forced = ForcedRenewal.CONSUMED
        logger.info(f"Access token renewed; expires at {renewed.expiration.isoformat()}")
        return renewed

    # --- Revocation ---

    async def revoke(self) -> None:
        """Revokes the current tokens and deletes the stored records.

        The refresh token is revoked when present (which also invalidates its
        access tokens), otherwise the access token.
        """
        credential = self._current
        try:
            if credential is not None and self._exchange is not None:
                if credential.refresh_token:
                    await self._exchange.revoke(credential.refresh_token, "refresh_token")
                else:
                    await self._exchange.revoke(credential.access_token, "access_token")
        finally:
            if self.store is not None and self._username is not None:
                self.store.delete_latest(self._username)
                self.store.delete_refresh_token(self._username)

    async def aclose(self) -> None:
        """Closes the exchange and the store."""
        try:
            if self._exchange is not None:
                await self._exchange.aclose()
        finally:
            if self.store is not None:
                self.store.close()
