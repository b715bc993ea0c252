"""Custom exceptions for the assistant router."""

import math


class BankbotException(Exception):
    """Base class for router exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Assistant router error"):
        self.message = message
        super().__init__(message)


class RateLimitExceededError(BankbotException):
    """Raised when a client has exhausted the bucket for a request category.

    Recoverable: the caller should back off for ``retry_after`` seconds.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        retry_after: float,
        category: str | None = None,
        limit: int | None = None,
        detail: str | None = None,
    ):
        self.retry_after = retry_after
        self.category = category
        self.limit = limit
        super().__init__(detail or "Too many requests. Please try again later.")

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds to wait, rounded up so a retry is never early."""
        return max(1, math.ceil(round(self.retry_after, 6)))

    def to_response(self) -> dict:
        return {
            "error": "rate_limit_exceeded",
            "message": self.message,
            "category": self.category,
            "retry_after": self.retry_after_seconds,
        }

    def to_headers(self) -> dict[str, str]:
        headers = {
            "X-Rate-Limit-Retry-After-Seconds": str(self.retry_after_seconds),
            "Retry-After": str(self.retry_after_seconds),
        }
        if self.limit is not None:
            headers["X-Rate-Limit-Limit"] = str(self.limit)
        return headers
