"""Services package for the assistant router.

This package provides:
- Lexical intent classification with entity extraction
- The intent handler dispatch table
- The request pipeline tying admission, classification and dispatch together
"""

from bankbot.app.services.handlers import (
    HandlerContext,
    HandlerReply,
    IntentHandlerRegistry,
    build_default_registry,
)
from bankbot.app.services.intent import (
    Intent,
    IntentClassifier,
    PatternTable,
    get_intent_classifier,
)
from bankbot.app.services.pipeline import PipelineResult, RequestPipeline

__all__ = [
    # Intent classification
    "Intent",
    "IntentClassifier",
    "PatternTable",
    "get_intent_classifier",
    # Dispatch
    "HandlerContext",
    "HandlerReply",
    "IntentHandlerRegistry",
    "build_default_registry",
    # Pipeline
    "PipelineResult",
    "RequestPipeline",
]
