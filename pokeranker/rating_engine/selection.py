"""Selection of the next battle to present."""

import random
from collections import deque
from collections.abc import Mapping, Sequence

from pokeranker.logging import get_logger
from pokeranker.models import Candidate
from pokeranker.rating_engine.errors import PoolTooSmallError
from pokeranker.rating_engine.models import BattleType, RefinementQueueEntry
from pokeranker.rating_engine.refinement import RefinementQueue
from pokeranker.rating_engine.suggestions import SuggestionBook

log = get_logger(__name__)

# Random draws before falling back to a deterministic swap
MAX_SAMPLE_ATTEMPTS = 10

# Draw weights
RECENT_WEIGHT = 0.3
UNBATTLED_WEIGHT = 1.5
FEW_BATTLES_WEIGHT = 1.2
FEW_BATTLES = 3


def battle_key(participant_ids: Sequence[int]) -> tuple[int, ...]:
    """Order-insensitive identity of a battle."""
    return tuple(sorted(participant_ids))


def candidate_weight(
    candidate_id: int,
    recent_ids: set[int],
    battle_counts: Mapping[int, int],
) -> float:
    """Relative chance of drawing a candidate.

    Recently seen candidates are damped; candidates with no or few battles
    are boosted so a large pool still gets everyone rated.
    """
    weight = 1.0
    if candidate_id in recent_ids:
        weight *= RECENT_WEIGHT

    seen = battle_counts.get(candidate_id, 0)
    if seen == 0:
        weight *= UNBATTLED_WEIGHT
    elif seen < FEW_BATTLES:
        weight *= FEW_BATTLES_WEIGHT
    return weight


class BattleSelector:
    """Chooses pairs or triplets from a candidate pool.

    Priority order:
    1. The refinement queue head
    2. A candidate with an unused ranking suggestion
    3. A weighted random draw, preferring candidates that did not appear in
       the last ``recent_window`` battles

    Two consecutive battles never share the same set of participants unless
    the pool is exactly the battle size.
    """

    def __init__(
        self,
        refinement_queue: RefinementQueue | None = None,
        recent_window: int = 3,
        rng: random.Random | None = None,
        suggestions: SuggestionBook | None = None,
    ):
        self.refinement_queue = refinement_queue
        self.suggestions = suggestions
        self.rng = rng or random.Random()
        self._recent: deque[frozenset[int]] = deque(maxlen=max(recent_window, 0))
        self.last_battle: tuple[int, ...] | None = None
        self.last_was_refinement = False
        self.last_was_suggestion = False
        # Queue entry as it was before the last refinement battle consumed it
        self.last_refinement_entry: RefinementQueueEntry | None = None

    def select_next(
        self,
        pool: Sequence[Candidate],
        battle_type: BattleType,
        exclude_last_participants: bool = False,
        battle_counts: Mapping[int, int] | None = None,
    ) -> list[Candidate]:
        """Select the participants of the next battle.

        Args:
            pool: Candidates eligible for this battle (already filtered)
            battle_type: Pairs or triplets
            exclude_last_participants: Avoid everyone from the previous battle
                when the pool is large enough
            battle_counts: Battles fought per candidate id; unbattled and
                rarely battled candidates are drawn more often

        Returns:
            2 or 3 distinct candidates

        Raises:
            PoolTooSmallError: if the pool cannot fill the battle
        """
        size = battle_type.size
        counts = battle_counts or {}
        by_id: dict[int, Candidate] = {}
        for candidate in pool:
            by_id.setdefault(candidate.id, candidate)

        if len(by_id) < size:
            raise PoolTooSmallError(
                f"Need {size} distinct candidates for {battle_type.value}, pool has {len(by_id)}"
            )

        self.last_refinement_entry = None
        battle = self._from_refinement(by_id, size, counts)
        self.last_was_refinement = battle is not None

        self.last_was_suggestion = False
        if battle is None:
            battle = self._from_suggestion(by_id, size, counts)
            self.last_was_suggestion = battle is not None

        if battle is None:
            battle = self._random_battle(list(by_id.values()), size, exclude_last_participants, counts)

        ids = [c.id for c in battle]
        self._remember(ids)
        log.debug(
            "battle_selected",
            participants=ids,
            refinement=self.last_was_refinement,
            suggestion=self.last_was_suggestion,
        )
        return battle

    def mark_presented(
        self,
        participant_ids: Sequence[int],
        refinement_entry: RefinementQueueEntry | None = None,
    ) -> None:
        """Record a battle shown without going through ``select_next``.

        Used when undo puts a battle back in front of the user, so the next
        selection does not hand the same battle out again.
        """
        self._remember(list(participant_ids))
        self.last_refinement_entry = refinement_entry
        self.last_was_refinement = refinement_entry is not None
        self.last_was_suggestion = False

    def _remember(self, participant_ids: list[int]) -> None:
        self.last_battle = battle_key(participant_ids)
        self._recent.append(frozenset(participant_ids))

    def _recent_ids(self) -> set[int]:
        return set().union(*self._recent) if self._recent else set()

    def _is_repeat(self, battle: Sequence[Candidate]) -> bool:
        return self.last_battle is not None and battle_key([c.id for c in battle]) == self.last_battle

    def _weighted_sample(
        self,
        candidates: Sequence[Candidate],
        k: int,
        battle_counts: Mapping[int, int],
    ) -> list[Candidate]:
        """Draw ``k`` distinct candidates, one weighted draw per slot."""
        recent = self._recent_ids()
        remaining = list(candidates)
        chosen: list[Candidate] = []
        for _ in range(k):
            weights = [candidate_weight(c.id, recent, battle_counts) for c in remaining]
            index = self.rng.choices(range(len(remaining)), weights=weights)[0]
            chosen.append(remaining.pop(index))
        return chosen

    def _from_refinement(
        self,
        by_id: dict[int, Candidate],
        size: int,
        battle_counts: Mapping[int, int],
    ) -> list[Candidate] | None:
        queue = self.refinement_queue
        if queue is None:
            return None

        while (entry := queue.dequeue()) is not None:
            candidate = by_id.get(entry.candidate_id)
            if candidate is None:
                log.warning("refinement_candidate_not_in_pool", candidate_id=entry.candidate_id)
                continue

            opponents = [oid for oid in entry.opponent_ids if oid in by_id and oid != candidate.id]
            taken, rest = opponents[:size - 1], opponents[size - 1:]
            battle = [candidate] + [by_id[oid] for oid in taken]
            if len(battle) < size:
                chosen = {c.id for c in battle}
                spare = [c for c in by_id.values() if c.id not in chosen]
                battle.extend(self._weighted_sample(spare, size - len(battle), battle_counts))

            if self._is_repeat(battle):
                # Keep the entry intact and let another battle go first
                queue.push_front(entry)
                return None

            if rest:
                queue.push_front(entry.model_copy(update={"opponent_ids": tuple(rest)}))
            self.last_refinement_entry = entry
            return battle

        return None

    def _from_suggestion(
        self,
        by_id: dict[int, Candidate],
        size: int,
        battle_counts: Mapping[int, int],
    ) -> list[Candidate] | None:
        if self.suggestions is None:
            return None
        suggested = self.suggestions.unused_ids(by_id)
        if not suggested:
            return None

        focus = by_id[self.rng.choice(suggested)]
        # Fill with candidates that carry no pending suggestion of their own
        fillers = [c for c in by_id.values() if c.id not in suggested]
        if len(fillers) < size - 1:
            fillers = [c for c in by_id.values() if c.id != focus.id]

        for _ in range(MAX_SAMPLE_ATTEMPTS):
            battle = [focus] + self._weighted_sample(fillers, size - 1, battle_counts)
            if not self._is_repeat(battle):
                return battle
        return None

    def _random_battle(
        self,
        pool: list[Candidate],
        size: int,
        exclude_last_participants: bool,
        battle_counts: Mapping[int, int],
    ) -> list[Candidate]:
        recent = self._recent_ids()
        last = set(self.last_battle or ())

        excluded = recent | last if exclude_last_participants else recent
        tiers = [[c for c in pool if c.id not in excluded]]
        if exclude_last_participants:
            tiers.append([c for c in pool if c.id not in last])
        tiers.append(pool)

        for tier in tiers:
            if len(tier) < size:
                continue
            for _ in range(MAX_SAMPLE_ATTEMPTS):
                battle = self._weighted_sample(tier, size, battle_counts)
                if not self._is_repeat(battle):
                    return battle

        # Every draw repeated the last battle: swap one participant out
        battle = self._weighted_sample(pool, size, battle_counts)
        outsiders = [c for c in pool if c.id not in last]
        if outsiders and self._is_repeat(battle):
            battle[-1] = self.rng.choice(outsiders)
        elif self._is_repeat(battle):
            log.warning("battle_repeat_unavoidable", pool_size=len(pool), battle_size=size)
        return battle

    def clear(self) -> None:
        self._recent.clear()
        self.last_battle = None
        self.last_was_refinement = False
        self.last_was_suggestion = False
        self.last_refinement_entry = None
