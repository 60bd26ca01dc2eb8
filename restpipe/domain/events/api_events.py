"""Domain Events related to request execution.

Examples include events for when requests are throttled, retried, fail, or
succeed, and for credential renewal and recovery.
"""

from dataclasses import dataclass, field
import time
from typing import Optional

# Base Event Class
@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass # Marker for sinks that accept any event

# --- Request Events ---

@dataclass
class RequestDispatched(DomainEvent):
    """Event triggered when a request is handed to the transport."""
    method: str
    url: str
    attempt_number: int # 1 for the first attempt
    timestamp: float = field(default_factory=time.time)

@dataclass
class RequestSucceeded(DomainEvent):
    """Event triggered when a logical request completes successfully."""
    method: str
    url: str
    status_code: int
    attempts: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class RequestFailed(DomainEvent):
    """Event triggered when a logical request fails definitively."""
    method: str
    url: str
    error_type: str
    error_message: str
    status_code: Optional[int] = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class RequestThrottled(DomainEvent):
    """Event triggered when a request had to wait for a rate-limit permit."""
    method: str
    url: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a 5xx response is about to be retried."""
    method: str
    url: str
    attempt_number: int # The attempt that failed
    status_code: int
    timestamp: float = field(default_factory=time.time)

# --- Credential Events ---

@dataclass
class CredentialRenewed(DomainEvent):
    """Event triggered when the access token was renewed."""
    forced: bool
    expiration: str # ISO 8601
    timestamp: float = field(default_factory=time.time)

@dataclass
class CredentialRecovered(DomainEvent):
    """Event triggered when a renewable credential was re-adopted from the store."""
    username: str
    timestamp: float = field(default_factory=time.time)
