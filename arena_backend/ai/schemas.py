"""
Schemas for dialogue generation in the arena.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ProviderConfig:
    """
    Configuration for a dialogue provider.
    """
    name: str
    api_key_env: str  # Environment variable name for API key
    model: str  # Default model to use
    endpoint: Optional[str] = None  # Custom endpoint
    max_tokens: int = 150
    temperature: float = 0.8  # Higher temperature for varied banter


@dataclass
class DialogueRequest:
    """
    What to say and who says it.

    Attributes:
        character_id: Speaker (canonical id), or the coach
        kind: "coach_response", "character_reaction", "battle_cry" or "coaching_reply"
        context: Structured facts (rogue action, ruling, psych snapshot, message)
    """
    character_id: str
    kind: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "character_id": self.character_id,
            "kind": self.kind,
            "context": dict(self.context),
        }


@dataclass
class DialogueResult:
    """
    Generated line plus where it came from.

    degraded is True when the live provider failed or timed out and the
    text came from the fallback pool instead.
    """
    text: str
    source: str = "mock"  # mock | anthropic | fallback
    degraded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "source": self.source,
            "degraded": self.degraded,
            "error": self.error,
        }
