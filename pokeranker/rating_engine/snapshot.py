"""Derived ranking views and milestone snapshots."""

from collections.abc import Iterable, Mapping

from pokeranker.logging import get_logger
from pokeranker.models import Candidate
from pokeranker.rating_engine.models import MilestoneSnapshot, RankingEntry
from pokeranker.rating_engine.store import RatingStore
from pokeranker.rating_engine.trueskill_update import confidence_percent, conservative_score

log = get_logger(__name__)


class RankingSnapshotter:
    """Builds sorted rankings from a RatingStore and keeps milestone snapshots.

    Order is always conservative score descending, then candidate id
    ascending, so the same store state always yields the same ranking.
    """

    def __init__(
        self,
        store: RatingStore,
        catalog: Mapping[int, Candidate] | None = None,
        confidence_full_sigma: float = 8.33,
    ):
        self.store = store
        self.catalog: dict[int, Candidate] = dict(catalog or {})
        self.confidence_full_sigma = confidence_full_sigma
        self._snapshots: dict[int, MilestoneSnapshot] = {}

    def update_catalog(self, candidates: Iterable[Candidate]) -> None:
        for candidate in candidates:
            self.catalog[candidate.id] = candidate

    def ordered_ids(self) -> list[int]:
        ratings = self.store.ratings()
        return sorted(ratings, key=lambda cid: (-conservative_score(ratings[cid]), cid))

    def compute_rankings(self) -> list[RankingEntry]:
        """Ranked entries for every rated candidate, best first."""
        ratings = self.store.ratings()
        stats = self.store.stats()
        rankings = []
        for rank, cid in enumerate(self.ordered_ids(), 1):
            rating = ratings[cid]
            stat = stats[cid]
            rankings.append(RankingEntry(
                rank=rank,
                candidate_id=cid,
                candidate=self.catalog.get(cid),
                mu=rating.mu,
                sigma=rating.sigma,
                score=conservative_score(rating),
                confidence=confidence_percent(rating, self.confidence_full_sigma),
                battle_count=stat.battle_count,
                wins=stat.wins,
                losses=stat.losses,
            ))
        return rankings

    def capture_snapshot(self, battle_count: int) -> MilestoneSnapshot:
        """Freeze the current order at ``battle_count``.

        Snapshots are write-once: capturing the same count again returns the
        snapshot taken first.
        """
        existing = self._snapshots.get(battle_count)
        if existing is not None:
            return existing

        snapshot = MilestoneSnapshot(
            battle_count=battle_count,
            ordered_candidate_ids=tuple(self.ordered_ids()),
        )
        self._snapshots[battle_count] = snapshot
        log.info("milestone_snapshot_captured", battle_count=battle_count,
                 ranked=len(snapshot.ordered_candidate_ids))
        return snapshot

    def get_snapshot(self, battle_count: int) -> MilestoneSnapshot | None:
        return self._snapshots.get(battle_count)

    @property
    def milestones(self) -> list[MilestoneSnapshot]:
        return sorted(self._snapshots.values(), key=lambda s: s.battle_count)

    def discard_after(self, battle_count: int) -> list[int]:
        """Forget snapshots captured past ``battle_count`` (used by undo)."""
        dropped = [count for count in self._snapshots if count > battle_count]
        for count in dropped:
            del self._snapshots[count]
        if dropped:
            log.info("milestone_snapshots_discarded", battle_counts=sorted(dropped))
        return sorted(dropped)

    def clear(self) -> None:
        self._snapshots.clear()

    def restore(self, snapshots: Iterable[MilestoneSnapshot]) -> None:
        self._snapshots = {s.battle_count: s for s in snapshots}
