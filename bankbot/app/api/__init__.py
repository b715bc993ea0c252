"""API endpoints package for the assistant router."""

from bankbot.app.api.chat import router as chat_router
from bankbot.app.api.metrics import router as metrics_router

__all__ = [
    "chat_router",
    "metrics_router",
]
