"""Intent classification package.

- patterns.py: intent trigger phrases and entity patterns
- models.py: the Intent result type
- classifier.py: the lexical classifier
"""

from bankbot.app.services.intent.classifier import (
    IntentClassifier,
    get_intent_classifier,
    phrase_confidence,
)
from bankbot.app.services.intent.models import Intent
from bankbot.app.services.intent.patterns import (
    DEFAULT_PATTERN_TABLE,
    ENTITY_PATTERNS,
    ERROR_INTENT,
    INTENT_PATTERNS,
    UNKNOWN_INTENT,
    PatternTable,
)

__all__ = [
    "Intent",
    "IntentClassifier",
    "get_intent_classifier",
    "phrase_confidence",
    "PatternTable",
    "DEFAULT_PATTERN_TABLE",
    "INTENT_PATTERNS",
    "ENTITY_PATTERNS",
    "UNKNOWN_INTENT",
    "ERROR_INTENT",
]
