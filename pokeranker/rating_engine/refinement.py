"""Queue of candidates flagged for extra validation battles."""

import random
from collections import deque
from collections.abc import Iterable

from pokeranker.logging import get_logger
from pokeranker.rating_engine.models import RefinementQueueEntry

log = get_logger(__name__)


class RefinementQueue:
    """FIFO queue with at most one entry per candidate.

    A single instance is shared by every view: flagging a candidate in the
    manual ranking view queues the same battles the battle view consumes.
    """

    def __init__(self, opponents_per_entry: int = 3, rng: random.Random | None = None):
        """Initialize the queue.

        Args:
            opponents_per_entry: Opponents drawn for each flagged candidate
            rng: Random source for opponent selection (seedable for tests)
        """
        self.opponents_per_entry = opponents_per_entry
        self.rng = rng or random.Random()
        self._entries: deque[RefinementQueueEntry] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, candidate_id: int) -> bool:
        return self.contains(candidate_id)

    def contains(self, candidate_id: int) -> bool:
        return any(e.candidate_id == candidate_id for e in self._entries)

    @property
    def entries(self) -> list[RefinementQueueEntry]:
        return list(self._entries)

    def enqueue(self, candidate_id: int, pool_ids: Iterable[int]) -> RefinementQueueEntry:
        """Flag a candidate, drawing random opponents from the pool.

        Idempotent: a candidate already queued keeps its existing entry.
        A pool with fewer eligible opponents than requested yields an entry
        with as many as exist, possibly none.
        """
        for entry in self._entries:
            if entry.candidate_id == candidate_id:
                log.debug("refinement_already_queued", candidate_id=candidate_id)
                return entry

        eligible = sorted({cid for cid in pool_ids if cid != candidate_id})
        count = min(self.opponents_per_entry, len(eligible))
        opponents = tuple(self.rng.sample(eligible, count))
        if count < self.opponents_per_entry:
            log.warning(
                "refinement_short_of_opponents",
                candidate_id=candidate_id,
                requested=self.opponents_per_entry,
                available=count,
            )

        entry = RefinementQueueEntry(candidate_id=candidate_id, opponent_ids=opponents)
        self._entries.append(entry)
        log.info("refinement_enqueued", candidate_id=candidate_id,
                 opponents=list(opponents), queue_size=len(self._entries))
        return entry

    def dequeue(self) -> RefinementQueueEntry | None:
        """Pop the oldest entry, or None when empty."""
        if not self._entries:
            return None
        return self._entries.popleft()

    def peek(self) -> RefinementQueueEntry | None:
        return self._entries[0] if self._entries else None

    def push_front(self, entry: RefinementQueueEntry) -> None:
        """Return a partly consumed entry to the head of the queue."""
        if self.contains(entry.candidate_id):
            return
        self._entries.appendleft(entry)

    def give_back(self, entry: RefinementQueueEntry) -> None:
        """Return an entry consumed by a battle that was never played.

        Any leftover of the same entry is replaced, so the candidate gets back
        every opponent the discarded battle used.
        """
        self._entries = deque(e for e in self._entries if e.candidate_id != entry.candidate_id)
        self._entries.appendleft(entry)
        log.info("refinement_given_back", candidate_id=entry.candidate_id,
                 opponents=list(entry.opponent_ids))

    def remove(self, candidate_id: int) -> bool:
        """Unflag a candidate. Returns True if an entry was removed."""
        before = len(self._entries)
        self._entries = deque(e for e in self._entries if e.candidate_id != candidate_id)
        removed = len(self._entries) != before
        if removed:
            log.info("refinement_removed", candidate_id=candidate_id, queue_size=len(self._entries))
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def restore(self, entries: Iterable[RefinementQueueEntry]) -> None:
        self._entries = deque()
        for entry in entries:
            if not self.contains(entry.candidate_id):
                self._entries.append(entry)
