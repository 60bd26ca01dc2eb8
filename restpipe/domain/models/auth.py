"""Domain models related to authentication.

A Credential is the access/refresh token bundle that authorizes requests.
Credentials are immutable: renewal replaces the whole object.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from .common import ALL_SCOPES, AccessToken, RefreshToken, Scope


def utcnow() -> datetime:
    """Returns the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def mask_token(token: Optional[str], visible: int = 6) -> str:
    """Masks a token for display or logging, keeping a short prefix."""
    if not token:
        return "<none>"
    if len(token) <= visible:
        return "*" * len(token)
    return f"{token[:visible]}...({len(token)} chars)"


@dataclass(frozen=True, repr=False)
class Credential:
    """The access/refresh token bundle authorizing requests."""
    access_token: AccessToken
    expiration: datetime
    scopes: FrozenSet[Scope] = field(default_factory=frozenset)
    refresh_token: Optional[RefreshToken] = None

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("Credential requires a non-empty access token")
        if self.expiration.tzinfo is None:
            # Naive datetimes are taken to be UTC
            object.__setattr__(self, "expiration", self.expiration.replace(tzinfo=timezone.utc))
        if not isinstance(self.scopes, frozenset):
            object.__setattr__(self, "scopes", frozenset(self.scopes))

    @property
    def renewable(self) -> bool:
        return bool(self.refresh_token)

    def expires_within(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        """True if the credential expires within `margin` of `now` or already has."""
        now = now or utcnow()
        return self.expiration - margin <= now

    def has_scope(self, scope: str) -> bool:
        return ALL_SCOPES in self.scopes or scope in self.scopes

    def with_refresh_token(self, refresh_token: Optional[str]) -> "Credential":
        """Returns a copy carrying the given refresh token."""
        return replace(self, refresh_token=RefreshToken(refresh_token) if refresh_token else None)

    def to_dict(self) -> Dict[str, Any]:
        """Serializes the credential for a credential store."""
        return {
            "access_token": self.access_token,
            "scopes": sorted(self.scopes),
            "refresh_token": self.refresh_token,
            "expiration": self.expiration.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Credential":
        """Rebuilds a credential serialized with `to_dict`."""
        return cls(
            access_token=AccessToken(data["access_token"]),
            scopes=frozenset(Scope(s) for s in data.get("scopes") or ()),
            refresh_token=data.get("refresh_token") or None,
            expiration=datetime.fromisoformat(data["expiration"]),
        )

    @classmethod
    def from_token_response(cls, payload: Mapping[str, Any], now: Optional[datetime] = None) -> "Credential":
        """Builds a credential from an OAuth2 token endpoint JSON body.

        Args:
            payload: Decoded body with `access_token`, `expires_in`, `scope`
                (space separated) and an optional `refresh_token`.
            now: Reference time for `expires_in` (defaults to the current time).

        Raises:
            KeyError, ValueError: If the payload lacks the required fields.
        """
        now = now or utcnow()
        return cls(
            access_token=AccessToken(payload["access_token"]),
            scopes=parse_scopes(payload.get("scope", "")),
            refresh_token=payload.get("refresh_token") or None,
            expiration=now + timedelta(seconds=int(payload["expires_in"])),
        )

    def __repr__(self) -> str:
        return (
            f"Credential(access_token={mask_token(self.access_token)!r}, "
            f"scopes={sorted(self.scopes)!r}, renewable={self.renewable}, "
            f"expiration={self.expiration.isoformat()!r})"
        )


def parse_scopes(value: Any) -> FrozenSet[Scope]:
    """Accepts a space/comma separated string or an iterable of scopes."""
    if isinstance(value, str):
        items: Iterable[str] = value.replace(",", " ").split()
    else:
        items = value or ()
    return frozenset(Scope(s) for s in items)


class ForcedRenewal(Enum):
    """State of a one-time forced renewal request.

    IDLE -> PENDING when a renewal is forced, PENDING -> CONSUMED once a
    renewal succeeds. A failed renewal leaves the state PENDING.
    """
    IDLE = "idle"
    PENDING = "pending"
    CONSUMED = "consumed"
