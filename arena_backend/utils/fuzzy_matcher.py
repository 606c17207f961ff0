"""
Fuzzy ability-name matching.

Coaches type ability names in a hurry ("Firebal", "shield bash").
Selections are resolved against the fighter's real ability names:

- exact (case-insensitive): accepted
- score 80+ (70+ for names of 4 chars or less): auto-corrected
- score 60+ (50+ for short names): suggested, not accepted
- below that: rejected with the closest names as suggestions
"""

from typing import Dict, List, Optional, Tuple

from fuzzywuzzy import fuzz, process

AUTO_CORRECT_THRESHOLD = 80
SUGGEST_THRESHOLD = 60
SHORT_NAME_AUTO_CORRECT = 70
SHORT_NAME_SUGGEST = 50
SHORT_NAME_LENGTH = 4


class AbilityMatcher:
    """Typo-tolerant lookup of ability names."""

    def thresholds(self, query: str) -> Tuple[int, int]:
        """(auto_correct, suggest) thresholds for a query."""
        if len(query) <= 2:
            # Only an exact match may auto-correct a one or two letter query
            return (100, SHORT_NAME_SUGGEST)
        if len(query) <= SHORT_NAME_LENGTH:
            return (SHORT_NAME_AUTO_CORRECT, SHORT_NAME_SUGGEST)
        return (AUTO_CORRECT_THRESHOLD, SUGGEST_THRESHOLD)

    def score(self, query: str, candidate: str) -> int:
        """Similarity 0-100; short names also get partial-ratio credit."""
        query, candidate = query.lower().strip(), candidate.lower().strip()
        ratio = fuzz.ratio(query, candidate)
        if len(query) <= 2:
            return ratio
        if len(query) <= SHORT_NAME_LENGTH or len(candidate) <= SHORT_NAME_LENGTH:
            return max(ratio, fuzz.partial_ratio(query, candidate))
        return max(ratio, fuzz.token_sort_ratio(query, candidate))

    def best(self, query: str, candidates: List[str]) -> Optional[Tuple[str, int]]:
        best_name, best_score = None, -1
        for candidate in candidates:
            candidate_score = self.score(query, candidate)
            if candidate_score > best_score:
                best_name, best_score = candidate, candidate_score
        if best_name is None:
            return None
        return (best_name, best_score)

    def resolve(self, query: str, candidates: List[str]) -> Dict:
        """
        Resolve a typed ability name.

        Returns:
            Dict with:
            - action: "exact", "auto_correct", "suggest" or "error"
            - match: Accepted ability name (exact/auto_correct only)
            - score: Similarity score
            - suggestions: Names to offer back to the coach
        """
        if not query or not candidates:
            return {"action": "error", "match": None, "score": 0, "suggestions": []}

        lowered = query.strip().lower()
        for candidate in candidates:
            if candidate.lower() == lowered:
                return {"action": "exact", "match": candidate, "score": 100, "suggestions": []}

        auto_threshold, suggest_threshold = self.thresholds(query.strip())
        name, name_score = self.best(query, candidates)

        if name_score >= auto_threshold:
            return {"action": "auto_correct", "match": name, "score": name_score, "suggestions": []}

        if name_score >= suggest_threshold:
            return {"action": "suggest", "match": None, "score": name_score, "suggestions": [name]}

        nearby = process.extract(query, candidates, scorer=fuzz.ratio, limit=3)
        return {
            "action": "error",
            "match": None,
            "score": 0,
            "suggestions": [entry[0] for entry in nearby],
        }
