"""Middleware package for the assistant router."""

from bankbot.app.middleware.rate_limit import RateLimiter, RateLimitMiddleware
from bankbot.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "RateLimiter",
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "get_request_id",
]
