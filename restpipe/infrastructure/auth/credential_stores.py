"""Concrete CredentialStore implementations.

NoopCredentialStore keeps nothing, MemoryCredentialStore keeps credentials
for the life of the process and DiskCredentialStore persists them with
diskcache so later processes can reuse a refresh token.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Union

import diskcache as dc

from restpipe.domain.interfaces.credential_store import CredentialStore
from restpipe.domain.models.auth import Credential
from restpipe.domain.models.common import RefreshToken, Username
from restpipe.infrastructure.config.settings import DEFAULT_TOKEN_DIR

logger = logging.getLogger(__name__)


class NoopCredentialStore(CredentialStore):
    """A store that never holds anything."""

    def fetch_latest(self, username: Username) -> Optional[Credential]:
        return None

    def fetch_refresh_token(self, username: Username) -> Optional[RefreshToken]:
        return None

    def store_latest(self, username: Username, credential: Credential) -> None:
        pass

    def store_refresh_token(self, username: Username, refresh_token: RefreshToken) -> None:
        pass

    def delete_latest(self, username: Username) -> None:
        pass

    def delete_refresh_token(self, username: Username) -> None:
        pass


class MemoryCredentialStore(CredentialStore):
    """Keeps credentials in process memory."""

    def __init__(self):
        self._latest: Dict[str, Credential] = {}
        self._refresh_tokens: Dict[str, RefreshToken] = {}
        self._lock = threading.Lock()

    def fetch_latest(self, username: Username) -> Optional[Credential]:
        with self._lock:
            return self._latest.get(username)

    def fetch_refresh_token(self, username: Username) -> Optional[RefreshToken]:
        with self._lock:
            return self._refresh_tokens.get(username)

    def store_latest(self, username: Username, credential: Credential) -> None:
        with self._lock:
            self._latest[username] = credential

    def store_refresh_token(self, username: Username, refresh_token: RefreshToken) -> None:
        with self._lock:
            self._refresh_tokens[username] = refresh_token

    def delete_latest(self, username: Username) -> None:
        with self._lock:
            self._latest.pop(username, None)

    def delete_refresh_token(self, username: Username) -> None:
        with self._lock:
            self._refresh_tokens.pop(username, None)


class DiskCredentialStore(CredentialStore):
    """Persists credentials in a diskcache directory."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_TOKEN_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        # Diskcache handles cross-process locking itself
        self._cache = dc.Cache(str(self.directory), timeout=1)
        logger.info(f"Credential store opened at: {self._cache.directory}")

    @staticmethod
    def _latest_key(username: Username) -> str:
        return f"latest:{username}"

    @staticmethod
    def _refresh_key(username: Username) -> str:
        return f"refresh:{username}"

    def fetch_latest(self, username: Username) -> Optional[Credential]:
        data = self._cache.get(self._latest_key(username))
        if data is None:
            return None
        try:
            return Credential.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable stored credential for '{username}': {e}")
            return None

    def fetch_refresh_token(self, username: Username) -> Optional[RefreshToken]:
        token = self._cache.get(self._refresh_key(username))
        return RefreshToken(token) if token else None

    def store_latest(self, username: Username, credential: Credential) -> None:
        self._cache.set(self._latest_key(username), credential.to_dict())
        logger.debug(f"Stored latest credential for '{username}'")

    def store_refresh_token(self, username: Username, refresh_token: RefreshToken) -> None:
        self._cache.set(self._refresh_key(username), str(refresh_token))

    def delete_latest(self, username: Username) -> None:
        self._cache.delete(self._latest_key(username))

    def delete_refresh_token(self, username: Username) -> None:
        self._cache.delete(self._refresh_key(username))

    def clear(self) -> None:
        """Removes every stored credential."""
        self._cache.clear()
        logger.info(f"Cleared credential store at: {self.directory}")

    def close(self) -> None:
        self._cache.close()
        logger.debug(f"Credential store closed at: {self.directory}")
