"""Rate limiting data models.

This module contains the request categories, their fixed token bucket
policies, the bucket state and the admission decision types.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class RateCategory(str, Enum):
    """Rate limit category, derived from the declared request kind."""
    CHAT = "chat"
    VOICE = "voice"
    TRANSFER = "transfer"
    GENERAL = "general"

    @classmethod
    def parse(cls, value: "RateCategory | str | None") -> "RateCategory":
        """Resolve a category value, falling back to CHAT for unknown input."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.CHAT


@dataclass(frozen=True)
class RatePolicy:
    """Capacity and refill schedule for one category."""
    capacity: int
    refill_tokens: int
    refill_period_seconds: float

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self.refill_tokens / self.refill_period_seconds


DEFAULT_POLICY = RatePolicy(capacity=100, refill_tokens=100, refill_period_seconds=60.0)

POLICIES: dict[RateCategory, RatePolicy] = {
    RateCategory.CHAT: DEFAULT_POLICY,
    RateCategory.VOICE: RatePolicy(capacity=20, refill_tokens=20, refill_period_seconds=60.0),
    RateCategory.TRANSFER: RatePolicy(capacity=5, refill_tokens=5, refill_period_seconds=60.0),
}


def policy_for(category: "RateCategory | str") -> RatePolicy:
    """Get the policy for a category; anything without its own uses the chat policy."""
    return POLICIES.get(RateCategory.parse(category), DEFAULT_POLICY)


@dataclass(eq=False)
class TokenBucket:
    """Token bucket state for one key.

    ``tokens`` is fractional so refill can be applied at any granularity.
    All reads and writes of ``tokens`` and ``last_refill`` go through
    ``try_consume`` under the bucket's own lock.
    """
    capacity: float
    refill_rate: float
    tokens: float
    last_refill: float
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        if elapsed > 0:
            self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
            self.last_refill = now

    def try_consume(self, now: float, tokens: int = 1) -> tuple[bool, float]:
        """Refill for elapsed time, then take ``tokens`` if available.

        Returns:
            (consumed, value) where value is the remaining token count when
            consumed, otherwise the seconds until enough tokens accrue.
        """
        with self._lock:
            self._refill(now)
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True, self.tokens
            return False, (tokens - self.tokens) / self.refill_rate

    def available(self, now: float) -> float:
        """Tokens that would be available at ``now``, without changing state."""
        with self._lock:
            elapsed = max(0.0, now - self.last_refill)
            return min(self.capacity, self.tokens + elapsed * self.refill_rate)

    def snapshot(self) -> tuple[float, float]:
        """Consistent (tokens, last_refill) pair."""
        with self._lock:
            return self.tokens, self.last_refill


@dataclass(frozen=True)
class Admitted:
    """The request was admitted and one token consumed."""
    remaining_tokens: float
    limit: int = 0
    category: RateCategory = RateCategory.CHAT

    allowed = True

    @property
    def remaining(self) -> int:
        """Whole tokens left, as reported to clients."""
        return int(self.remaining_tokens)


@dataclass(frozen=True)
class Rejected:
    """The bucket was empty; retry after the given number of seconds."""
    retry_after_seconds: float
    limit: int = 0
    category: RateCategory = RateCategory.CHAT

    allowed = False


Decision = Union[Admitted, Rejected]
