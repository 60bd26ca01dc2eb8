"""Domain models for rate limiting and response classification."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .common import ApiErrorEntry

# Published quota: ~1 request/second sustained with short bursts
DEFAULT_RATE_CAPACITY = 5
DEFAULT_RATE_PER_SECOND = 1.0


@dataclass
class RateBudget:
    """Token bucket state. `level` always stays within [0, capacity]."""
    capacity: int
    refill_rate: float # Tokens per second
    level: float
    last_refill: float # Monotonic timestamp

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("Rate budget capacity must be at least 1")
        if self.refill_rate <= 0:
            raise ValueError("Rate budget refill rate must be positive")
        self.level = min(max(self.level, 0.0), float(self.capacity))

    def projected_level(self, now: float) -> float:
        """Level the bucket would have at `now`, without changing it."""
        elapsed = max(0.0, now - self.last_refill)
        return min(float(self.capacity), self.level + elapsed * self.refill_rate)

    def refill(self, now: float) -> None:
        """Adds the tokens accrued since the last refill, capped at capacity."""
        self.level = self.projected_level(now)
        self.last_refill = now

    def seconds_until(self, tokens: float = 1.0, level: Optional[float] = None) -> float:
        """Time until `tokens` will have accrued, assuming no other consumer."""
        missing = tokens - (self.level if level is None else level)
        return 0.0 if missing <= 0 else missing / self.refill_rate


class Outcome(Enum):
    """Category a completed response falls into."""
    SUCCESS = "success"
    TRANSIENT_SERVER_ERROR = "transient_server_error" # 5xx, retryable
    API_ERROR = "api_error"                           # Structured error in a JSON body
    HTTP_ERROR = "http_error"                         # Non-2xx without structured detail


@dataclass(frozen=True)
class Classification:
    """Result of classifying a response."""
    outcome: Outcome
    errors: List[ApiErrorEntry] = field(default_factory=list)

    @property
    def first_error(self) -> Optional[ApiErrorEntry]:
        return self.errors[0] if self.errors else None

    @property
    def retryable(self) -> bool:
        return self.outcome is Outcome.TRANSIENT_SERVER_ERROR
