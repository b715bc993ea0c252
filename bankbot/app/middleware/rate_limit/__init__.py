"""Rate limiting for the assistant router.

Each (category, client) pair owns a token bucket. The category comes from
the request kind (URI), never from message content, and selects a fixed
capacity/refill policy. ``RateLimiter.admit`` is synchronous and performs
no I/O; ``RateLimitMiddleware`` applies it to HTTP requests.
"""

import hashlib
from typing import Any, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from bankbot.app.core.config import settings
from bankbot.app.core.logging import get_log_context, get_logger
from bankbot.app.exceptions import RateLimitExceededError
from bankbot.app.middleware.rate_limit.models import (
    DEFAULT_POLICY,
    POLICIES,
    Admitted,
    Decision,
    RateCategory,
    RatePolicy,
    Rejected,
    TokenBucket,
    policy_for,
)
from bankbot.app.middleware.rate_limit.store import BucketStore

logger = get_logger(__name__)

__all__ = [
    # Models
    "Admitted",
    "Rejected",
    "Decision",
    "RateCategory",
    "RatePolicy",
    "TokenBucket",
    "POLICIES",
    "DEFAULT_POLICY",
    "policy_for",
    # Storage
    "BucketStore",
    # Main classes
    "RateLimiter",
    "RateLimitMiddleware",
    "resolve_category",
    "bucket_key",
]


def bucket_key(category: RateCategory, client_key: str) -> str:
    """Composite bucket key, e.g. ``voice_user:alice``."""
    return f"{category.value}_{client_key}"


def resolve_category(path: str) -> RateCategory:
    """Map a request path to its rate limit category by whole path segment.

    ``/api/chatbot/intents`` is general: ``chatbot`` is not the ``chat`` segment.
    """
    segments = set(path.split("/"))
    if "voice" in segments:
        return RateCategory.VOICE
    if "transfer" in segments:
        return RateCategory.TRANSFER
    if "chat" in segments:
        return RateCategory.CHAT
    return RateCategory.GENERAL


class RateLimiter:
    """Per-key, per-category token bucket rate limiter.

    Pure policy and bucket math over a ``BucketStore``: it never resolves
    categories from request metadata and never raises for unknown input.
    """

    def __init__(self, store: Optional[BucketStore] = None, metrics: Optional[Any] = None):
        """Initialize the limiter.

        Args:
            store: Bucket store to use; a private one is created if omitted
            metrics: Optional collector with ``record_admission(category, allowed)``
        """
        self.store = store if store is not None else BucketStore()
        self.metrics = metrics

    def admit(self, category: RateCategory | str, client_key: str) -> Decision:
        """Try to consume one token for ``client_key`` in ``category``.

        Returns:
            Admitted with the remaining tokens, or Rejected with the
            seconds until one token will be available
        """
        category = RateCategory.parse(category)
        policy = policy_for(category)
        key = bucket_key(category, client_key)

        while True:
            bucket = self.store.get_or_create(key, policy)
            consumed, value = bucket.try_consume(self.store.clock())
            # A bucket evicted between lookup and consume is orphaned; the
            # decision must come from the bucket the store still holds
            if self.store.peek(key) is bucket:
                break

        if consumed:
            decision: Decision = Admitted(
                remaining_tokens=value, limit=policy.capacity, category=category
            )
        else:
            decision = Rejected(
                retry_after_seconds=value, limit=policy.capacity, category=category
            )

        if self.metrics is not None:
            self.metrics.record_admission(category.value, decision.allowed)
        return decision

    def evict_idle(self, max_idle_seconds: float) -> int:
        """Drop buckets idle longer than the TTL."""
        return self.store.evict_idle(max_idle_seconds)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limits on requests.

    The category is resolved from the request path and the client from a
    bearer token or the client IP. ``X-User-ID`` takes precedence only when
    ``trust_user_header`` is set, for deployments where an upstream
    authenticator sets that header.
    Admitted responses carry ``X-Rate-Limit-Remaining``; rejected requests
    get a 429 with ``X-Rate-Limit-Retry-After-Seconds`` and ``Retry-After``.
    """

    def __init__(
        self,
        app,
        limiter: RateLimiter,
        exempt_paths: Optional[list[str]] = None,
        enabled: Optional[bool] = None,
        trust_user_header: Optional[bool] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = set(
            exempt_paths if exempt_paths is not None else settings.rate_limit_exempt_paths
        )
        self.enabled = enabled if enabled is not None else settings.rate_limit_enabled
        self.trust_user_header = (
            trust_user_header if trust_user_header is not None
            else settings.rate_limit_trust_user_header
        )

    def _get_client_key(self, request: Request) -> str:
        """Get the client identity for the request.

        API keys and IP addresses are hashed (SHA-256, 32 hex chars) so raw
        credentials and addresses are never stored as bucket keys.
        """
        if self.trust_user_header:
            user_id = request.headers.get("X-User-ID", "").strip()
            if user_id:
                return f"user:{user_id[:128]}"

        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            api_key = auth[7:].strip()
            key_hash = hashlib.sha256(api_key.encode()).hexdigest()[:32]
            return f"apikey:{key_hash}"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"

        ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
        return f"ip:{ip_hash}"

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        path = request.url.path
        if not self.enabled or path in self.exempt_paths:
            return await call_next(request)

        client_key = self._get_client_key(request)
        category = resolve_category(path)
        decision = self.limiter.admit(category, client_key)

        request.state.client_key = client_key
        request.state.rate_category = category

        if isinstance(decision, Rejected):
            error = RateLimitExceededError(
                retry_after=decision.retry_after_seconds,
                category=category.value,
                limit=decision.limit,
            )
            logger.warning(
                f"Rate limit exceeded for client {client_key} on {path}",
                extra=get_log_context(
                    request_id=getattr(request.state, "request_id", None),
                    client_id=client_key,
                    category=category.value,
                    path=path,
                ),
            )
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response(),
                headers=error.to_headers(),
            )

        response = await call_next(request)
        response.headers["X-Rate-Limit-Limit"] = str(decision.limit)
        response.headers["X-Rate-Limit-Remaining"] = str(decision.remaining)
        return response
