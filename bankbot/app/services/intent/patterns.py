"""Intent trigger phrases and entity extraction patterns.

Both tables are ordered tuples built once at import time and never mutated,
so classification can read them from any thread without locking. The order
of ``INTENT_PATTERNS`` decides which intent wins when several trigger
phrases occur in the same message: the first declared intent wins.
"""

import re
from dataclasses import dataclass
from typing import Tuple

from bankbot.app.core.logging import get_logger

logger = get_logger(__name__)

IntentPatterns = Tuple[Tuple[str, Tuple[str, ...]], ...]
EntityPatterns = Tuple[Tuple[str, re.Pattern], ...]

UNKNOWN_INTENT = "unknown"
ERROR_INTENT = "error"
RESERVED_INTENTS = (UNKNOWN_INTENT, ERROR_INTENT)

INTENT_PATTERNS: IntentPatterns = (
    ("greeting", (
        "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
    )),
    ("goodbye", (
        "bye", "goodbye", "see you", "thanks", "thank you", "exit", "quit",
    )),
    ("account_balance", (
        "balance", "account balance", "how much money", "check balance",
        "current balance",
    )),
    ("transaction_history", (
        "transaction", "transactions", "history", "recent transactions",
        "statement", "activity",
    )),
    ("transfer_money", (
        "transfer", "send money", "pay", "payment", "wire transfer", "move money",
    )),
    ("book_appointment", (
        "appointment", "book appointment", "schedule", "meeting", "visit branch",
    )),
    ("financial_advice", (
        "advice", "financial advice", "investment", "savings", "budget",
        "financial planning",
    )),
    ("loan_inquiry", (
        "loan", "mortgage", "credit", "borrow", "lending", "personal loan",
    )),
    ("card_services", (
        "card", "credit card", "debit card", "block card", "card services",
        "new card",
    )),
    ("investment_info", (
        "investment", "stocks", "bonds", "portfolio", "mutual funds", "trading",
    )),
)

# A bare number is an amount when it is a run of at most 7 digits (or a
# grouped number) standing alone. Digits, "/", "-" or ":" next to it mean it
# is part of an account number, date, phone number or time.
AMOUNT_PATTERN = re.compile(
    r"(?<![\w.,/:-])"
    r"(?:"
    r"[$£€]\s?\d{1,3}(?:,\d{3})+(?:\.\d+)?"
    r"|[$£€]\s?\d+(?:\.\d+)?"
    r"|\d{1,3}(?:,\d{3})+(?:\.\d+)?"
    r"|\d{1,7}(?:\.\d+)?"
    r")"
    r"(?![\w/:-]|[.,]\d)"
)

ENTITY_PATTERNS: EntityPatterns = (
    ("amount", AMOUNT_PATTERN),
    ("account_number", re.compile(r"(?<!\d)\d{8,12}(?!\d)")),
    ("date", re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b")),
    ("phone", re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")),
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", re.IGNORECASE)),
)


@dataclass(frozen=True)
class PatternTable:
    """Immutable registry of intent triggers and entity patterns."""
    intents: IntentPatterns
    entities: EntityPatterns

    def __post_init__(self) -> None:
        names = [name for name, _ in self.intents]
        if len(names) != len(set(names)):
            raise ValueError("intent names must be unique")
        for name in names:
            if name in RESERVED_INTENTS:
                raise ValueError(f"'{name}' is a reserved intent name")
        for name, phrases in self.intents:
            for phrase in phrases:
                if not phrase or phrase != phrase.lower().strip():
                    raise ValueError(
                        f"trigger phrase {phrase!r} for '{name}' must be lowercase and trimmed"
                    )

    @property
    def intent_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.intents)

    @property
    def entity_types(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.entities)

    def phrases_for(self, intent: str) -> Tuple[str, ...]:
        for name, phrases in self.intents:
            if name == intent:
                return phrases
        return ()


DEFAULT_PATTERN_TABLE = PatternTable(intents=INTENT_PATTERNS, entities=ENTITY_PATTERNS)
