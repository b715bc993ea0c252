import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bankbot.app.api.chat import router as chat_router
from bankbot.app.api.metrics import MetricsCollector, MetricsMiddleware
from bankbot.app.api.metrics import router as metrics_router
from bankbot.app.core.config import Settings, settings as default_settings
from bankbot.app.core.logging import get_logger, setup_logging
from bankbot.app.exceptions import RateLimitExceededError
from bankbot.app.middleware.rate_limit import BucketStore, RateLimiter, RateLimitMiddleware
from bankbot.app.middleware.request_id import RequestIdMiddleware
from bankbot.app.services.intent import get_intent_classifier
from bankbot.app.services.pipeline import RequestPipeline

logger = get_logger(__name__)


async def _evict_idle_buckets(limiter: RateLimiter, ttl_seconds: int, interval_seconds: int) -> None:
    """Periodically drop rate limit buckets that have been idle past the TTL."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = limiter.evict_idle(ttl_seconds)
        except Exception:
            logger.exception("Idle bucket eviction failed")
            continue
        if removed:
            logger.info(f"Evicted {removed} idle rate limit buckets")


def create_app(
    config: Optional[Settings] = None,
    store: Optional[BucketStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings to use instead of the environment-loaded defaults
        store: Bucket store to use; a new one is created if omitted

    Returns:
        Configured FastAPI application instance
    """
    config = config or default_settings
    setup_logging(config)

    metrics = MetricsCollector()
    store = store if store is not None else BucketStore(max_entries=config.rate_limit_max_buckets)
    limiter = RateLimiter(store=store, metrics=metrics)
    pipeline = RequestPipeline(limiter, get_intent_classifier(), metrics=metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start idle bucket eviction on startup and stop it on shutdown."""
        eviction_task = None
        if config.rate_limit_bucket_ttl_seconds > 0:
            eviction_task = asyncio.create_task(
                _evict_idle_buckets(
                    limiter,
                    config.rate_limit_bucket_ttl_seconds,
                    config.rate_limit_cleanup_interval_seconds,
                )
            )

        logger.info(
            "Application startup complete",
            extra={
                "intents": len(pipeline.supported_intents()),
                "rate_limit_enabled": config.rate_limit_enabled,
                "debug_mode": config.debug,
            },
        )
        yield

        if eviction_task is not None:
            eviction_task.cancel()
            with suppress(asyncio.CancelledError):
                await eviction_task
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=config.app_name,
        description="Banking assistant request router with rate limiting and intent classification",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.bucket_store = store
    app.state.rate_limiter = limiter
    app.state.pipeline = pipeline
    app.state.metrics = metrics
    app.state.settings = config

    # Middleware order matters: last added = first executed
    app.add_middleware(
        RateLimitMiddleware,
        limiter=limiter,
        exempt_paths=config.rate_limit_exempt_paths,
        enabled=config.rate_limit_enabled,
        trust_user_header=config.rate_limit_trust_user_header,
    )
    # Outside the rate limiter so 429 responses are counted
    app.add_middleware(MetricsMiddleware, collector=metrics)
    app.add_middleware(RequestIdMiddleware)
    # Outermost so preflight requests never reach the rate limiter
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Rate-Limit-Limit",
            "X-Rate-Limit-Remaining",
            "X-Rate-Limit-Retry-After-Seconds",
            "Retry-After",
        ],
        max_age=600,
    )

    app.include_router(chat_router)
    app.include_router(metrics_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with rate limiter and classifier status."""
        return {
            "status": "ok",
            "components": {
                "rate_limiter": {
                    "status": "ok",
                    "enabled": config.rate_limit_enabled,
                    "buckets": len(store),
                },
                "classifier": {
                    "status": "ok",
                    "intents": len(pipeline.supported_intents()),
                },
            },
        }

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
        """Handle RateLimitExceededError and return HTTP 429 response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.to_headers(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; debug mode adds the
        exception message and type.
        """
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        content = {
            "error": "internal_error",
            "message": "Internal server error",
            "request_id": request_id,
        }
        if config.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
