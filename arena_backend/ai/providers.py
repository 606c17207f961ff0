"""
Dialogue providers for the arena.

===============================================================================
PROVIDER ARCHITECTURE
===============================================================================

    DialogueClient (dialogue_client.py)
         |
         | calls provider.generate()
         v
    BaseProvider (abstract)
         |
         +-- MockProvider: Renders lines from the fixed pools (free, instant, offline)
         |
         +-- AnthropicProvider: Claude API via raw HTTP (httpx)

===============================================================================
ERROR CONTRACT
===============================================================================

generate() returns (text, error):
    - Success: (text, None)
    - Failure: (None, error_description)

Providers NEVER raise exceptions to callers. The DialogueClient swaps in
a fallback line on any error so round resolution never waits on, or
fails because of, the dialogue service.

===============================================================================
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import httpx

from arena_backend.ai import responses
from arena_backend.ai.schemas import DialogueRequest, ProviderConfig
from arena_backend.game_logic.rogue_judge import RogueActionType
from arena_backend.models.psych_profile import PsychProfile
from arena_backend.utils.rng import BattleRng

logger = logging.getLogger("arena.dialogue")


# =============================================================================
# API CONFIGURATION
# =============================================================================

ANTHROPIC_API_ENDPOINT = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"

# Dialogue is flavor; never hold a round hostage for it
DEFAULT_TIMEOUT_SECONDS = 4.0

SYSTEM_PROMPT = (
    "You voice characters and coaches in a coached arena battle game. "
    "Reply with ONE short line of in-character dialogue (under 25 words). "
    "No quotes, no stage directions, no explanations."
)


def clean_dialogue_text(text: Optional[str]) -> str:
    """Strip whitespace and wrapping quotes from a model reply; keep the first line."""
    if not text:
        return ""
    line = text.strip().splitlines()[0].strip() if text.strip() else ""
    if len(line) >= 2 and line[0] == line[-1] and line[0] in "\"'":
        line = line[1:-1].strip()
    return line


def build_dialogue_prompt(request: DialogueRequest) -> str:
    """User prompt: the kind of line wanted plus the structured facts."""
    facts = json.dumps(request.context, sort_keys=True, default=str)
    return (
        f"Line type: {request.kind}\n"
        f"Speaker id: {request.character_id}\n"
        f"Facts: {facts}\n"
        f"Write the line."
    )


class BaseProvider(ABC):
    """
    Abstract base class for dialogue providers.
    All providers must implement generate().
    """

    def __init__(self, config: Optional[ProviderConfig] = None):
        self.config = config
        self._api_key: Optional[str] = None

    @property
    def name(self) -> str:
        """Provider name for logging."""
        return self.config.name if self.config else "unknown"

    @abstractmethod
    def generate(self, request: DialogueRequest, rng: BattleRng,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Tuple[Optional[str], Optional[str]]:
        """
        Produce one line of dialogue.

        Returns:
            (text, None) on success, (None, error) on failure
        """

    def validate_config(self) -> bool:
        """Override in subclasses that require API keys."""
        return True

    def get_api_key(self) -> Optional[str]:
        """Get API key from environment if configured."""
        if self._api_key:
            return self._api_key
        if self.config and self.config.api_key_env:
            self._api_key = os.getenv(self.config.api_key_env)
        return self._api_key


class MockProvider(BaseProvider):
    """
    Renders lines from the fixed pools in ai/responses.py.
    Deterministic for a given rng - perfect for development and testing.
    """

    def __init__(self):
        super().__init__(ProviderConfig(
            name="mock",
            api_key_env="",
            model="pools-v1",
        ))

    def generate(self, request: DialogueRequest, rng: BattleRng,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Tuple[Optional[str], Optional[str]]:
        return render_from_pools(request, rng), None


def render_from_pools(request: DialogueRequest, rng: BattleRng) -> str:
    """Pick a pool line for the request. Never fails."""
    context = request.context or {}
    name = context.get("name") or request.character_id

    if request.kind == "coach_response":
        action_type = None
        raw_type = (context.get("rogue_action") or {}).get("action_type")
        if raw_type:
            try:
                action_type = RogueActionType(raw_type)
            except ValueError:
                action_type = None
        return responses.pick_coach_response(action_type, context.get("coach_name", "Coach"), name, rng)

    if request.kind == "character_reaction":
        profile = PsychProfile.from_dict(context.get("psych"))
        return responses.pick_character_reaction(profile, rng)

    if request.kind == "battle_cry":
        return responses.pick_battle_cry(name, rng)

    if request.kind == "coaching_reply":
        return context.get("rule_reply") or responses.COACHING_FALLBACK_REPLY

    return responses.COACHING_FALLBACK_REPLY


class AnthropicProvider(BaseProvider):
    """
    Anthropic Claude API provider.

    Makes one short HTTP call to the Messages API per line of dialogue.
    """

    def __init__(self):
        super().__init__(ProviderConfig(
            name="anthropic",
            api_key_env="ANTHROPIC_API_KEY",
            model="claude-3-haiku-20240307",  # Fast, cheap model for banter
            endpoint=ANTHROPIC_API_ENDPOINT,
            max_tokens=120,
            temperature=0.8,
        ))

    def validate_config(self) -> bool:
        """Validate that API key is present."""
        if not self.get_api_key():
            logger.warning("%s not found in environment", self.config.api_key_env)
            return False
        return True

    def generate(self, request: DialogueRequest, rng: BattleRng,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Tuple[Optional[str], Optional[str]]:
        if not self.validate_config():
            return None, "API key not configured"

        text, error = self._make_api_request(SYSTEM_PROMPT, build_dialogue_prompt(request), timeout)
        if error:
            return None, error

        line = clean_dialogue_text(text)
        if not line:
            return None, "Empty dialogue line"
        return line, None

    def _make_api_request(self, system_prompt: str, user_prompt: str,
                          timeout: float) -> Tuple[Optional[str], Optional[str]]:
        """
        Make HTTP request to Anthropic Messages API.

        It NEVER raises exceptions - all errors are returned as (None, error_msg).
        """
        headers = {
            "x-api-key": self.get_api_key(),
            "content-type": "application/json",
            "anthropic-version": ANTHROPIC_API_VERSION,
        }
        body = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [
                {"role": "user", "content": user_prompt}
            ],
        }

        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(self.config.endpoint, headers=headers, json=body)

            if response.status_code == 401:
                logger.warning("AnthropicProvider: 401 - Invalid API key")
                return None, "Invalid API key"

            if response.status_code == 429:
                logger.warning("AnthropicProvider: 429 - Rate limited")
                return None, "Rate limited - too many requests"

            if response.status_code >= 500:
                logger.warning("AnthropicProvider: %s - Server error", response.status_code)
                return None, f"Server error ({response.status_code})"

            if response.status_code != 200:
                logger.warning("AnthropicProvider: %s - %s", response.status_code, response.text[:200])
                return None, f"HTTP {response.status_code}"

            try:
                response_json = response.json()
            except json.JSONDecodeError as e:
                logger.warning("AnthropicProvider: Failed to parse response JSON: %s", e)
                return None, "Invalid JSON in response"

            # Response format: {"content": [{"type": "text", "text": "..."}], ...}
            content = response_json.get("content", [])
            if not content or not isinstance(content, list):
                return None, "No content in response"

            first = content[0]
            if not isinstance(first, dict):
                logger.warning("AnthropicProvider: Unexpected content block %r", first)
                return None, "Malformed content in response"

            text_content = first.get("text", "")
            if not isinstance(text_content, str) or not text_content:
                return None, "Empty text in response"

            return text_content, None

        except httpx.TimeoutException:
            logger.warning("AnthropicProvider: Request timed out after %ss", timeout)
            return None, f"Request timed out after {timeout}s"

        except httpx.HTTPError as e:
            logger.warning("AnthropicProvider: HTTP error: %s", e)
            return None, f"HTTP error: {type(e).__name__}"


# Registry of available providers
PROVIDERS: Dict[str, type] = {
    "mock": MockProvider,
    "anthropic": AnthropicProvider,
}


def get_provider(name: str) -> BaseProvider:
    """
    Get a provider instance by name.

    Unknown names fall back to the mock provider.
    """
    provider_class = PROVIDERS.get((name or "mock").lower())
    if provider_class is None:
        logger.warning("Unknown dialogue provider '%s', using mock", name)
        provider_class = MockProvider
    return provider_class()
