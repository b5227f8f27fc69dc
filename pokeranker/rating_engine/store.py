"""Owner of all rating state."""

from collections.abc import Iterable, Mapping

from pokeranker.logging import get_logger
from pokeranker.rating_engine.errors import InvalidOutcomeError
from pokeranker.rating_engine.models import BattleOutcome, BattleStat, Rating
from pokeranker.rating_engine.trueskill_update import PairwiseUpdateEngine

log = get_logger(__name__)


class RatingStore:
    """Maps candidate id to its rating and battle statistics.

    The store is the only writer of rating state, and every rating it holds
    was produced by ``PairwiseUpdateEngine`` (or restored from a saved
    state). Ratings are created lazily: a candidate without an entry is
    unranked.
    """

    def __init__(self, update_engine: PairwiseUpdateEngine | None = None):
        self.update_engine = update_engine or PairwiseUpdateEngine()
        self._ratings: dict[int, Rating] = {}
        self._stats: dict[int, BattleStat] = {}
        self._history: list[BattleOutcome] = []

    def __len__(self) -> int:
        return len(self._ratings)

    def __contains__(self, candidate_id: int) -> bool:
        return candidate_id in self._ratings

    def has_rating(self, candidate_id: int) -> bool:
        return candidate_id in self._ratings

    def get_or_init(self, candidate_id: int) -> Rating:
        """Return the rating for a candidate, creating the prior if missing."""
        rating = self._ratings.get(candidate_id)
        if rating is None:
            rating = self.update_engine.default_rating()
            self._ratings[candidate_id] = rating
            self._stats.setdefault(candidate_id, BattleStat())
        return rating

    def get_stat(self, candidate_id: int) -> BattleStat:
        return self._stats.get(candidate_id, BattleStat()).model_copy()

    def apply(self, outcome: BattleOutcome) -> tuple[Rating, Rating]:
        """Apply one outcome and record it in the history.

        Both new ratings are computed before either is written, so no reader
        can observe a half-applied outcome.

        Returns:
            (winner, loser) ratings after the update
        """
        if outcome.winner_id == outcome.loser_id:
            raise InvalidOutcomeError(
                f"Candidate {outcome.winner_id} cannot battle itself"
            )

        winner_before = self.get_or_init(outcome.winner_id)
        loser_before = self.get_or_init(outcome.loser_id)
        new_winner, new_loser = self.update_engine.update(winner_before, loser_before)

        self._ratings[outcome.winner_id] = new_winner
        self._ratings[outcome.loser_id] = new_loser

        winner_stat = self._stats[outcome.winner_id]
        winner_stat.battle_count += 1
        winner_stat.wins += 1
        loser_stat = self._stats[outcome.loser_id]
        loser_stat.battle_count += 1
        loser_stat.losses += 1

        self._history.append(outcome)

        log.debug(
            "outcome_applied",
            winner_id=outcome.winner_id,
            loser_id=outcome.loser_id,
            source=outcome.source.value,
            winner_mu=round(new_winner.mu, 3),
            winner_sigma=round(new_winner.sigma, 3),
            loser_mu=round(new_loser.mu, 3),
            loser_sigma=round(new_loser.sigma, 3),
        )
        return new_winner, new_loser

    def ratings(self) -> dict[int, Rating]:
        """Copy of the rating map (ratings themselves are immutable)."""
        return dict(self._ratings)

    def stats(self) -> dict[int, BattleStat]:
        return {cid: stat.model_copy() for cid, stat in self._stats.items()}

    @property
    def history(self) -> tuple[BattleOutcome, ...]:
        return tuple(self._history)

    def clear(self) -> None:
        """Drop all ratings, statistics and history."""
        self._ratings.clear()
        self._stats.clear()
        self._history.clear()

    def replay(self, outcomes: Iterable[BattleOutcome]) -> None:
        """Rebuild state from scratch by applying outcomes in order."""
        self.clear()
        for outcome in outcomes:
            self.apply(outcome)

    def restore(
        self,
        ratings: Mapping[int, Rating],
        stats: Mapping[int, BattleStat],
        history: Iterable[BattleOutcome],
    ) -> None:
        """Rehydrate from persisted state. Not an update path."""
        self._ratings = dict(ratings)
        self._stats = {cid: stats.get(cid, BattleStat()).model_copy() for cid in self._ratings}
        self._history = list(history)
        log.info("rating_store_restored", ratings=len(self._ratings), history=len(self._history))
