"""Interface for persistent credential storage.

Stores the latest credential and the refresh token for an identity so a
client can pick up where a previous process left off.
"""

import abc
from typing import Optional

from ..models.auth import Credential
from ..models.common import RefreshToken, Username


class CredentialStore(abc.ABC):
    """Abstract Base Class for credential persistence."""

    @abc.abstractmethod
    def fetch_latest(self, username: Username) -> Optional[Credential]:
        """Returns the most recently stored credential for `username`, if any."""
        pass

    @abc.abstractmethod
    def fetch_refresh_token(self, username: Username) -> Optional[RefreshToken]:
        """Returns the stored refresh token for `username`, if any."""
        pass

    @abc.abstractmethod
    def store_latest(self, username: Username, credential: Credential) -> None:
        pass

    @abc.abstractmethod
    def store_refresh_token(self, username: Username, refresh_token: RefreshToken) -> None:
        pass

    @abc.abstractmethod
    def delete_latest(self, username: Username) -> None:
        pass

    @abc.abstractmethod
    def delete_refresh_token(self, username: Username) -> None:
        pass

    def close(self) -> None:
        """Releases any file or database handles held by the store."""
        pass
