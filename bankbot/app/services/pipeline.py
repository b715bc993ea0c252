"""Request pipeline: rate limiter gate, then classifier, then dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from bankbot.app.core.logging import get_log_context, get_logger
from bankbot.app.exceptions import RateLimitExceededError
from bankbot.app.middleware.rate_limit import RateLimiter
from bankbot.app.middleware.rate_limit.models import Decision, RateCategory, Rejected
from bankbot.app.services.handlers import (
    ERROR_MESSAGE,
    HandlerContext,
    HandlerReply,
    IntentHandlerRegistry,
    build_default_registry,
)
from bankbot.app.services.intent import ERROR_INTENT, Intent, IntentClassifier

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pass through the pipeline.

    ``intent`` and ``reply`` are None when the request was rate limited.
    """
    decision: Optional[Decision]
    intent: Optional[Intent] = None
    reply: Optional[HandlerReply] = None

    @property
    def rejected(self) -> bool:
        return isinstance(self.decision, Rejected)

    def raise_for_status(self) -> None:
        """Raise RateLimitExceededError if the request was rate limited."""
        if isinstance(self.decision, Rejected):
            raise RateLimitExceededError(
                retry_after=self.decision.retry_after_seconds,
                category=self.decision.category.value,
                limit=self.decision.limit,
            )


class RequestPipeline:
    """Composes admission, classification and intent dispatch.

    The limiter and its bucket store are passed in so the owner controls
    their lifecycle; nothing here reaches for process-wide state.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        classifier: IntentClassifier,
        handlers: Optional[IntentHandlerRegistry] = None,
        metrics: Optional[Any] = None,
    ):
        self.limiter = limiter
        self.classifier = classifier
        self.handlers = (
            handlers if handlers is not None
            else build_default_registry(classifier.table.intent_names)
        )
        self.metrics = metrics

    def process(
        self,
        text: str,
        request_kind: RateCategory | str,
        client_identity: str,
    ) -> PipelineResult:
        """Admit, classify and dispatch one message."""
        category = RateCategory.parse(request_kind)
        decision = self.limiter.admit(category, client_identity)
        if isinstance(decision, Rejected):
            logger.warning(
                f"Rate limit exceeded for client {client_identity}",
                extra=get_log_context(client_id=client_identity, category=category.value),
            )
            return PipelineResult(decision=decision)

        intent, reply = self.respond(text, client_identity, category)
        return PipelineResult(decision=decision, intent=intent, reply=reply)

    def respond(
        self,
        text: str,
        client_identity: str,
        request_kind: RateCategory | str = RateCategory.CHAT,
    ) -> tuple[Intent, HandlerReply]:
        """Classify and dispatch a message that has already been admitted.

        A failing handler does not propagate: the turn is answered with the
        reserved "error" intent and an apology.
        """
        category = RateCategory.parse(request_kind)
        intent = self.classifier.classify(text)
        if self.metrics is not None:
            self.metrics.record_intent(intent.name)

        context = HandlerContext(
            text=text,
            client_identity=client_identity,
            request_kind=category.value,
        )
        try:
            reply = self.handlers.dispatch(intent, context)
        except Exception:
            logger.exception(
                f"Intent handler failed for {intent.name}",
                extra=get_log_context(
                    client_id=client_identity,
                    category=category.value,
                    intent=intent.name,
                ),
            )
            if self.metrics is not None:
                self.metrics.record_intent(ERROR_INTENT)
            return Intent(name=ERROR_INTENT, confidence=0.0), HandlerReply(ERROR_MESSAGE)

        return intent, reply

    def supported_intents(self) -> list[Intent]:
        return self.classifier.supported_intents()
