"""Ranking suggestions that steer which candidates battle next."""

from collections.abc import Iterable

from pokeranker.logging import get_logger
from pokeranker.rating_engine.errors import InvalidSuggestionError
from pokeranker.rating_engine.models import RankingSuggestion

log = get_logger(__name__)

DIRECTIONS = ("up", "down")
MAX_STRENGTH = 3


class SuggestionBook:
    """At most one suggestion per candidate, in the order they were made."""

    def __init__(self):
        self._suggestions: dict[int, RankingSuggestion] = {}

    def __len__(self) -> int:
        return len(self._suggestions)

    def __contains__(self, candidate_id: int) -> bool:
        return candidate_id in self._suggestions

    def get(self, candidate_id: int) -> RankingSuggestion | None:
        return self._suggestions.get(candidate_id)

    @property
    def entries(self) -> list[RankingSuggestion]:
        return list(self._suggestions.values())

    def suggest(self, candidate_id: int, direction: str, strength: int) -> RankingSuggestion:
        """Add or replace the suggestion for a candidate.

        A replaced suggestion starts over as unused.

        Raises:
            InvalidSuggestionError: direction is not up/down or strength is not 1-3
        """
        if direction not in DIRECTIONS:
            raise InvalidSuggestionError(f"Direction must be 'up' or 'down', got {direction!r}")
        if not 1 <= strength <= MAX_STRENGTH:
            raise InvalidSuggestionError(f"Strength must be between 1 and {MAX_STRENGTH}, got {strength}")

        suggestion = RankingSuggestion(candidate_id=candidate_id, direction=direction, strength=strength)
        self._suggestions.pop(candidate_id, None)
        self._suggestions[candidate_id] = suggestion
        log.info("suggestion_added", candidate_id=candidate_id, direction=direction, strength=strength)
        return suggestion

    def remove(self, candidate_id: int) -> bool:
        removed = self._suggestions.pop(candidate_id, None) is not None
        if removed:
            log.info("suggestion_removed", candidate_id=candidate_id)
        return removed

    def unused_ids(self, pool_ids: Iterable[int] | None = None) -> list[int]:
        """Candidates with an unused suggestion, optionally restricted to a pool."""
        allowed = None if pool_ids is None else set(pool_ids)
        return [
            cid for cid, s in self._suggestions.items()
            if not s.used and (allowed is None or cid in allowed)
        ]

    def mark_used(self, candidate_ids: Iterable[int]) -> list[int]:
        """Mark the unused suggestions among ``candidate_ids`` as used.

        Returns:
            Ids whose suggestion changed
        """
        return self._set_used(candidate_ids, True)

    def mark_unused(self, candidate_ids: Iterable[int]) -> list[int]:
        return self._set_used(candidate_ids, False)

    def _set_used(self, candidate_ids: Iterable[int], used: bool) -> list[int]:
        changed = []
        for cid in candidate_ids:
            suggestion = self._suggestions.get(cid)
            if suggestion is None or suggestion.used is used:
                continue
            self._suggestions[cid] = suggestion.model_copy(update={"used": used})
            changed.append(cid)
        if changed:
            log.debug("suggestions_marked", candidate_ids=changed, used=used)
        return changed

    def clear(self) -> None:
        self._suggestions.clear()

    def restore(self, suggestions: Iterable[RankingSuggestion]) -> None:
        self._suggestions = {s.candidate_id: s for s in suggestions}
