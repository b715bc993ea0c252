"""Metrics and monitoring endpoints for the assistant router.

Exposes Prometheus-compatible metrics and a JSON summary of request,
admission and intent counters.
"""

import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

router = APIRouter()


@dataclass
class RequestMetrics:
    """Metrics for a single endpoint."""

    count: int = 0
    total_duration: float = 0.0
    errors: int = 0


@dataclass
class MetricsCollector:
    """Collects and stores router metrics.

    Thread-safe; updated from request handlers and from the rate limiter,
    which both run synchronously. Collects:
    - Request counts and latencies per endpoint
    - Admissions and rejections per rate limit category
    - Classified intents per name
    """

    _requests: Dict[str, RequestMetrics] = field(
        default_factory=lambda: defaultdict(RequestMetrics)
    )
    _admitted: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _rejected: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _intents: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _start_time: float = field(default_factory=time.time)

    def record_request(self, endpoint: str, duration: float, status_code: int) -> None:
        with self._lock:
            metrics = self._requests[endpoint]
            metrics.count += 1
            metrics.total_duration += duration
            if status_code >= 400:
                metrics.errors += 1

    def record_admission(self, category: str, allowed: bool) -> None:
        with self._lock:
            if allowed:
                self._admitted[category] += 1
            else:
                self._rejected[category] += 1

    def record_intent(self, intent_name: str) -> None:
        with self._lock:
            self._intents[intent_name] += 1

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            total_requests = sum(m.count for m in self._requests.values())
            total_errors = sum(m.errors for m in self._requests.values())
            total_duration = sum(m.total_duration for m in self._requests.values())

            avg_latency = total_duration / total_requests if total_requests > 0 else 0
            error_rate = total_errors / total_requests if total_requests > 0 else 0

            endpoints = {
                endpoint: {
                    "count": metrics.count,
                    "avg_duration_ms": round((metrics.total_duration / metrics.count) * 1000, 2),
                    "error_count": metrics.errors,
                }
                for endpoint, metrics in self._requests.items()
                if metrics.count > 0
            }

            categories = set(self._admitted) | set(self._rejected)
            return {
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "total_requests": total_requests,
                "total_errors": total_errors,
                "error_rate": round(error_rate, 4),
                "average_latency_ms": round(avg_latency * 1000, 2),
                "endpoints": endpoints,
                "rate_limit": {
                    category: {
                        "admitted": self._admitted.get(category, 0),
                        "rejected": self._rejected.get(category, 0),
                    }
                    for category in sorted(categories)
                },
                "intents": dict(self._intents),
            }

    def get_prometheus_metrics(self) -> str:
        """Get metrics in Prometheus text format."""
        with self._lock:
            lines = []

            lines.append("# HELP bankbot_requests_total Total number of requests")
            lines.append("# TYPE bankbot_requests_total counter")
            for endpoint, metrics in self._requests.items():
                lines.append(f'bankbot_requests_total{{endpoint="{endpoint}"}} {metrics.count}')

            lines.append("\n# HELP bankbot_request_duration_seconds Total request duration")
            lines.append("# TYPE bankbot_request_duration_seconds counter")
            for endpoint, metrics in self._requests.items():
                lines.append(
                    f'bankbot_request_duration_seconds{{endpoint="{endpoint}"}} {metrics.total_duration}'
                )

            lines.append("\n# HELP bankbot_errors_total Total number of error responses")
            lines.append("# TYPE bankbot_errors_total counter")
            total_errors = sum(m.errors for m in self._requests.values())
            lines.append(f"bankbot_errors_total {total_errors}")

            lines.append("\n# HELP bankbot_rate_limit_admitted_total Admitted requests per category")
            lines.append("# TYPE bankbot_rate_limit_admitted_total counter")
            for category, count in self._admitted.items():
                lines.append(f'bankbot_rate_limit_admitted_total{{category="{category}"}} {count}')

            lines.append("\n# HELP bankbot_rate_limit_rejected_total Rejected requests per category")
            lines.append("# TYPE bankbot_rate_limit_rejected_total counter")
            for category, count in self._rejected.items():
                lines.append(f'bankbot_rate_limit_rejected_total{{category="{category}"}} {count}')

            lines.append("\n# HELP bankbot_intents_total Classified messages per intent")
            lines.append("# TYPE bankbot_intents_total counter")
            for intent, count in self._intents.items():
                lines.append(f'bankbot_intents_total{{intent="{intent}"}} {count}')

            lines.append("\n# HELP bankbot_uptime_seconds Router uptime in seconds")
            lines.append("# TYPE bankbot_uptime_seconds gauge")
            lines.append(f"bankbot_uptime_seconds {round(time.time() - self._start_time, 2)}")

            return "\n".join(lines) + "\n"


def get_metrics(request: Request) -> MetricsCollector:
    """FastAPI dependency returning the collector owned by the app."""
    return request.app.state.metrics


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(
    metrics: MetricsCollector = Depends(get_metrics),
) -> PlainTextResponse:
    """Prometheus-compatible metrics endpoint."""
    return PlainTextResponse(
        content=metrics.get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


@router.get("/stats")
async def router_stats(
    metrics: MetricsCollector = Depends(get_metrics),
) -> dict[str, Any]:
    """Detailed router statistics as JSON."""
    return metrics.get_summary()


class MetricsMiddleware:
    """ASGI middleware that records per-endpoint request metrics.

    Example:
        app.add_middleware(MetricsMiddleware, collector=metrics)
    """

    def __init__(self, app, collector: MetricsCollector):
        self.app = app
        self.collector = collector

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        status_code = 500

        async def wrapped_send(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 200)
            await send(message)

        try:
            await self.app(scope, receive, wrapped_send)
        finally:
            duration = time.time() - start_time
            endpoint = scope.get("path", "unknown")
            self.collector.record_request(endpoint, duration, status_code)
