"""Intent handler dispatch table.

Handlers receive the classified intent and the request context and return
the reply text plus follow-up suggestions. Banking back ends register their
own handlers by intent name; anything unregistered goes to the fallback.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from bankbot.app.services.intent.models import Intent
from bankbot.app.services.intent.patterns import UNKNOWN_INTENT


@dataclass(frozen=True)
class HandlerContext:
    """Request facts a handler may use besides the intent."""
    text: str
    client_identity: str
    request_kind: str


@dataclass(frozen=True)
class HandlerReply:
    message: str
    suggestions: List[str] = field(default_factory=list)


IntentHandler = Callable[[Intent, HandlerContext], HandlerReply]


SUGGESTIONS: Dict[str, List[str]] = {
    "greeting": [
        "Check my account balance",
        "View recent transactions",
        "Book an appointment",
        "Get financial advice",
    ],
    "account_balance": [
        "Show transaction history",
        "Transfer money",
        "View savings account",
        "Check credit card balance",
    ],
    "transaction_history": [
        "Filter by date range",
        "Export transactions",
        "Dispute a transaction",
        "Set up alerts",
    ],
}

DEFAULT_SUGGESTIONS = [
    "How can I help you?",
    "What else would you like to know?",
    "Check account balance",
    "Book appointment",
]

GREETING_MESSAGE = (
    "Hello! I'm your Banking Virtual Assistant. I can help you with account "
    "inquiries, transactions, appointments, and financial advice. "
    "How can I assist you today?"
)
GOODBYE_MESSAGE = "Thank you for using Banking Virtual Assistant. Have a great day!"
FALLBACK_MESSAGE = (
    "I'm not sure I understand. Could you please rephrase your question? "
    "I can help with account balance, transactions, appointments, and financial advice."
)
ERROR_MESSAGE = "I'm sorry, I encountered an error processing your request. Please try again."


def suggestions_for(intent_name: str) -> List[str]:
    return list(SUGGESTIONS.get(intent_name, DEFAULT_SUGGESTIONS))


def greeting_handler(intent: Intent, context: HandlerContext) -> HandlerReply:
    return HandlerReply(GREETING_MESSAGE, suggestions_for(intent.name))


def goodbye_handler(intent: Intent, context: HandlerContext) -> HandlerReply:
    return HandlerReply(GOODBYE_MESSAGE, suggestions_for(intent.name))


def fallback_handler(intent: Intent, context: HandlerContext) -> HandlerReply:
    return HandlerReply(FALLBACK_MESSAGE, suggestions_for(UNKNOWN_INTENT))


def acknowledge_handler(intent: Intent, context: HandlerContext) -> HandlerReply:
    """Confirm the understood request and the details picked out of it."""
    topic = intent.name.replace("_", " ")
    message = f"I can help you with {topic}."
    if intent.entities:
        details = ", ".join(
            f"{key.replace('_', ' ')}: {', '.join(value) if isinstance(value, list) else value}"
            for key, value in intent.entities.items()
        )
        message += f" I noted the following details - {details}."
    return HandlerReply(message, suggestions_for(intent.name))


class IntentHandlerRegistry:
    """Maps intent names to handlers, with a fallback for everything else."""

    def __init__(self, fallback: IntentHandler = fallback_handler):
        self._handlers: Dict[str, IntentHandler] = {}
        self.fallback = fallback

    def register(self, intent_name: str, handler: IntentHandler) -> None:
        self._handlers[intent_name] = handler

    def get(self, intent_name: str) -> Optional[IntentHandler]:
        return self._handlers.get(intent_name)

    def __contains__(self, intent_name: str) -> bool:
        return intent_name in self._handlers

    def dispatch(self, intent: Intent, context: HandlerContext) -> HandlerReply:
        handler = self._handlers.get(intent.name, self.fallback)
        return handler(intent, context)


def build_default_registry(intent_names) -> IntentHandlerRegistry:
    """Registry answering every catalog intent with a generic reply."""
    registry = IntentHandlerRegistry()
    for name in intent_names:
        registry.register(name, acknowledge_handler)
    registry.register("greeting", greeting_handler)
    registry.register("goodbye", goodbye_handler)
    return registry
