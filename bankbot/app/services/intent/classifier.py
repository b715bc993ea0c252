"""Lexical intent classifier.

Turns a message into an ``Intent`` by trigger phrase lookup over the
pattern table, then extracts entities from the original text. There is no
training step and no hidden state: the same text always yields the same
intent, and concurrent calls need no synchronization.
"""

from __future__ import annotations

from typing import Any

from bankbot.app.core.logging import get_logger
from bankbot.app.services.intent.models import EntityValue, Intent
from bankbot.app.services.intent.patterns import (
    DEFAULT_PATTERN_TABLE,
    UNKNOWN_INTENT,
    PatternTable,
)

logger = get_logger(__name__)

EXACT_MATCH_CONFIDENCE = 0.95
UNKNOWN_CONFIDENCE = 0.1
PARTIAL_MATCH_BASE = 0.7
PARTIAL_MATCH_WEIGHT = 0.2
PARTIAL_MATCH_CEILING = 0.9


def phrase_confidence(normalized: str, phrase: str) -> float:
    """Confidence for a trigger phrase found in the normalized message.

    An exact match scores 0.95. A substring match scores 0.7 plus 0.2 times
    the share of the message the phrase covers, capped at 0.9, so it always
    ranks below an exact match.
    """
    if normalized == phrase:
        return EXACT_MATCH_CONFIDENCE
    coverage = len(phrase) / len(normalized)
    return min(PARTIAL_MATCH_CEILING, PARTIAL_MATCH_BASE + coverage * PARTIAL_MATCH_WEIGHT)


class IntentClassifier:
    """Classifies messages into the banking intent catalog.

    Matching rules:
    1. Intents are tried in catalog declaration order
    2. Within an intent, trigger phrases are tried in declaration order
    3. The first phrase found as a substring of the lowercased, trimmed
       message decides the intent; nothing later is considered
    4. No match -> "unknown" with confidence 0.1
    """

    def __init__(self, table: PatternTable = DEFAULT_PATTERN_TABLE):
        self.table = table

    @staticmethod
    def normalize(text: Any) -> str:
        if not isinstance(text, str):
            return ""
        return text.lower().strip()

    def match(self, normalized: str) -> tuple[str, str] | None:
        """Find the first (intent, phrase) whose phrase occurs in the text."""
        if not normalized:
            return None
        for name, phrases in self.table.intents:
            for phrase in phrases:
                if phrase in normalized:
                    return name, phrase
        return None

    def extract_entities(self, text: Any) -> dict[str, EntityValue]:
        """Run every entity pattern over the original text.

        Types with no match are omitted; one match is stored as a string,
        several as a list in order of appearance.
        """
        if not isinstance(text, str) or not text:
            return {}

        entities: dict[str, EntityValue] = {}
        for entity_type, pattern in self.table.entities:
            matches = [m.group(0) for m in pattern.finditer(text)]
            if len(matches) == 1:
                entities[entity_type] = matches[0]
            elif matches:
                entities[entity_type] = matches
        return entities

    def classify(self, text: Any) -> Intent:
        """Classify a message. Never raises; bad input yields "unknown"."""
        normalized = self.normalize(text)
        matched = self.match(normalized)

        if matched is None:
            name, confidence = UNKNOWN_INTENT, UNKNOWN_CONFIDENCE
        else:
            name, phrase = matched
            confidence = phrase_confidence(normalized, phrase)

        entities = self.extract_entities(text)
        logger.debug(
            f"Classified message as {name} ({confidence:.3f})",
            extra={"intent": name, "entity_types": sorted(entities)},
        )
        return Intent(name=name, confidence=confidence, entities=entities)

    def supported_intents(self) -> list[Intent]:
        """List the intent catalog for capability discovery."""
        return [Intent(name=name, confidence=1.0, entities={}) for name in self.table.intent_names]


_default_classifier: IntentClassifier | None = None


def get_intent_classifier() -> IntentClassifier:
    """Get the shared classifier over the default pattern table."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = IntentClassifier()
    return _default_classifier
