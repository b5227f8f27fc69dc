"""Unit tests for the refinement queue."""

import random

import pytest

from pokeranker.rating_engine.refinement import RefinementQueue

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit

POOL = list(range(1, 11))


def make_queue(opponents: int = 3) -> RefinementQueue:
    return RefinementQueue(opponents_per_entry=opponents, rng=random.Random(7))


class TestEnqueue:
    """Tests for RefinementQueue.enqueue."""

    def test_picks_distinct_opponents(self):
        queue = make_queue()
        entry = queue.enqueue(4, POOL)

        assert entry.candidate_id == 4
        assert len(entry.opponent_ids) == 3
        assert len(set(entry.opponent_ids)) == 3
        assert 4 not in entry.opponent_ids
        assert set(entry.opponent_ids) <= set(POOL)

    def test_idempotent(self):
        """Enqueueing twice keeps one entry and the original opponents."""
        queue = make_queue()
        first = queue.enqueue(4, POOL)
        second = queue.enqueue(4, POOL)

        assert len(queue) == 1
        assert second == first

    def test_small_pool_gives_fewer_opponents(self):
        """A short pool never fails the enqueue."""
        queue = make_queue()

        assert len(queue.enqueue(1, [1, 2]).opponent_ids) == 1
        assert queue.enqueue(3, [3]).opponent_ids == ()
        assert queue.enqueue(5, []).opponent_ids == ()
        assert len(queue) == 3

    def test_seeded_rng_is_reproducible(self):
        assert make_queue().enqueue(4, POOL).opponent_ids == make_queue().enqueue(4, POOL).opponent_ids


class TestDequeueAndRemove:
    """Tests for FIFO order and removal."""

    def test_fifo_order(self):
        queue = make_queue()
        for cid in (3, 1, 2):
            queue.enqueue(cid, POOL)

        assert [queue.dequeue().candidate_id for _ in range(3)] == [3, 1, 2]
        assert queue.dequeue() is None

    def test_remove_only_affects_target(self):
        """remove(id) drops that entry and leaves the others."""
        queue = make_queue()
        for cid in (1, 2, 3):
            queue.enqueue(cid, POOL)

        assert queue.remove(2) is True
        assert len(queue) == 2
        assert not queue.contains(2)
        assert [e.candidate_id for e in queue.entries] == [1, 3]

    def test_remove_is_idempotent(self):
        queue = make_queue()
        queue.enqueue(1, POOL)

        assert queue.remove(9) is False
        queue.remove(1)
        assert queue.remove(1) is False
        assert len(queue) == 0

    def test_push_front(self):
        queue = make_queue()
        queue.enqueue(1, POOL)
        queue.enqueue(2, POOL)
        head = queue.dequeue()

        queue.push_front(head)

        assert queue.peek() == head
        assert len(queue) == 2

    def test_clear(self):
        queue = make_queue()
        queue.enqueue(1, POOL)
        queue.clear()
        assert len(queue) == 0

    def test_give_back_replaces_leftover(self):
        """A returned entry goes to the head and replaces any partial leftover."""
        queue = make_queue()
        queue.enqueue(1, POOL)
        entry = queue.enqueue(2, POOL)
        assert queue.dequeue().candidate_id == 1
        queue.dequeue()
        queue.push_front(entry.model_copy(update={"opponent_ids": entry.opponent_ids[1:]}))

        queue.give_back(entry)

        assert queue.entries == [entry]

    def test_give_back_after_full_consumption(self):
        queue = make_queue()
        entry = queue.enqueue(4, POOL)
        queue.enqueue(5, POOL)
        queue.dequeue()

        queue.give_back(entry)

        assert [e.candidate_id for e in queue.entries] == [4, 5]
        assert queue.peek() == entry
