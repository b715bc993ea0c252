"""Intent classification models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

EntityValue = Union[str, List[str]]


@dataclass(frozen=True)
class Intent:
    """Classified purpose of an utterance.

    ``entities`` maps an entity type to a single match, or to the list of
    matches in order of appearance when there is more than one.
    """
    name: str
    confidence: float
    entities: Dict[str, EntityValue] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "confidence": self.confidence,
            "entities": {
                key: list(value) if isinstance(value, list) else value
                for key, value in self.entities.items()
            },
        }
