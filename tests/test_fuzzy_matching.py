"""
Tests for typo-tolerant ability matching.

Tests cover:
1. Exact and case-insensitive matches
2. Auto-correction of close typos
3. Suggestions for near misses
4. Rejection of unrelated input
5. Strategy selection errors carrying suggestions
"""

import pytest

from arena_backend.errors import UnknownAbilityError
from arena_backend.game_logic.strategy import resolve_ability_name, valid_options
from arena_backend.models.character import Fighter
from arena_backend.utils.fuzzy_matcher import AbilityMatcher

ABILITIES = ["Fireball", "Shield Bash"]


class TestFuzzyMatcherCore:
    """Test AbilityMatcher.resolve()."""

    def setup_method(self):
        self.matcher = AbilityMatcher()

    def test_exact_match(self):
        """Exact names are accepted with score 100."""
        result = self.matcher.resolve("Fireball", ABILITIES)
        assert result["action"] == "exact"
        assert result["match"] == "Fireball"
        assert result["score"] == 100

    def test_case_insensitive(self):
        """Case never matters."""
        assert self.matcher.resolve("SHIELD BASH", ABILITIES)["match"] == "Shield Bash"

    def test_typo_auto_corrected(self):
        """One missing letter is corrected."""
        result = self.matcher.resolve("firebal", ABILITIES)
        assert result["action"] == "auto_correct"
        assert result["match"] == "Fireball"

    def test_short_prefix_auto_corrected(self):
        """Short queries get partial-ratio credit."""
        result = self.matcher.resolve("fire", ABILITIES)
        assert result["action"] == "auto_correct"
        assert result["match"] == "Fireball"

    def test_near_miss_suggested(self):
        """A different but similar word is only suggested."""
        result = self.matcher.resolve("fireblast", ABILITIES)
        assert result["action"] == "suggest"
        assert result["match"] is None
        assert result["suggestions"] == ["Fireball"]

    def test_two_letters_never_auto_correct(self):
        """One or two letters are too little to guess from."""
        assert self.matcher.resolve("fb", ABILITIES)["action"] != "auto_correct"

    def test_unrelated_rejected(self):
        """Nonsense is rejected, with the closest names offered."""
        result = self.matcher.resolve("xyzzyq", ABILITIES)
        assert result["action"] == "error"
        assert result["match"] is None
        assert set(result["suggestions"]) <= set(ABILITIES)

    def test_empty_input(self):
        """Empty queries and empty candidate lists are errors."""
        assert self.matcher.resolve("", ABILITIES)["action"] == "error"
        assert self.matcher.resolve("Fireball", [])["action"] == "error"


class TestStrategyResolution:
    """Ability lookups scoped to a strategy category."""

    def setup_method(self):
        self.fighter = Fighter.from_dict({
            "name": "Hero",
            "abilities": [
                {"name": "Fireball", "type": "attack"},
                {"name": "Shield Bash", "type": "defense"},
                {"name": "Mend", "type": "support"},
            ],
        })

    def test_valid_options_per_category(self):
        """Support abilities fit the attack and special slots."""
        assert valid_options(self.fighter, "attack") == ["Fireball", "Mend"]
        assert valid_options(self.fighter, "defense") == ["Shield Bash"]
        assert valid_options(self.fighter, "special") == ["Mend"]

    def test_fallback_option(self):
        """A fighter with nothing in a category gets the basic ability."""
        empty = Fighter.from_dict({"name": "Novice"})
        assert valid_options(empty, "attack") == ["Basic Attack"]
        assert valid_options(empty, "special") == ["Focus"]

    def test_unknown_category(self):
        """Only attack, defense and special exist."""
        with pytest.raises(ValueError):
            valid_options(self.fighter, "ultimate")

    def test_wrong_category_rejected(self):
        """A defense ability cannot fill the attack slot."""
        with pytest.raises(UnknownAbilityError):
            resolve_ability_name(self.fighter, "attack", "Shield Bash")

    def test_suggestions_attached(self):
        """Near misses raise with suggestions for the coach."""
        with pytest.raises(UnknownAbilityError) as excinfo:
            resolve_ability_name(self.fighter, "attack", "fireblast")
        assert excinfo.value.suggestions == ["Fireball"]
        assert "did you mean" in str(excinfo.value)
