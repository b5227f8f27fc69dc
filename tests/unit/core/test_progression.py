"""Unit tests for the progression controller."""

import pytest

from pokeranker.rating_engine.errors import ProgressionError
from pokeranker.rating_engine.models import BattleOutcome, OutcomeSource
from pokeranker.rating_engine.progression import ProgressionController, ProgressionState
from pokeranker.rating_engine.snapshot import RankingSnapshotter
from pokeranker.rating_engine.store import RatingStore

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


def make_controller(interval: int = 25, thresholds: list[int] | None = None) -> ProgressionController:
    """Factory to create a controller over a store with one rated pair."""
    store = RatingStore()
    store.apply(BattleOutcome(winner_id=1, loser_id=2, source=OutcomeSource.EXPLICIT, label="pairs"))
    return ProgressionController(
        RankingSnapshotter(store),
        milestone_interval=interval,
        milestone_thresholds=thresholds,
    )


class TestMilestoneSchedule:
    """Tests for milestone detection."""

    def test_default_every_25(self):
        controller = make_controller()

        assert not controller.is_milestone(0)
        assert not controller.is_milestone(24)
        assert controller.is_milestone(25)
        assert controller.is_milestone(50)
        assert controller.next_milestone() == 25

    def test_explicit_thresholds(self):
        """Thresholds replace the interval and are deduplicated."""
        controller = make_controller(thresholds=[10, 5, 10, 40])

        assert controller.milestone_thresholds == [5, 10, 40]
        assert controller.is_milestone(5)
        assert not controller.is_milestone(25)
        assert controller.next_milestone() == 5

    def test_no_milestone_after_last_threshold(self):
        controller = make_controller(thresholds=[1])
        controller.record_battle()
        controller.continue_from_milestone()

        assert controller.next_milestone() is None
        assert controller.battles_until_next_milestone() is None

    def test_battles_until_next(self):
        controller = make_controller(interval=4)
        controller.record_battle()

        assert controller.battles_until_next_milestone() == 3


class TestTransitions:
    """Tests for the battling / review / reset state machine."""

    def test_record_until_milestone(self):
        controller = make_controller(interval=3)

        assert controller.record_battle() is None
        assert controller.record_battle() is None
        snapshot = controller.record_battle()

        assert snapshot is not None
        assert snapshot.battle_count == 3
        assert controller.state is ProgressionState.MILESTONE_REVIEW
        assert controller.active_milestone == snapshot

    def test_record_during_review_rejected(self):
        """The count cannot move while a review is open."""
        controller = make_controller(interval=1)
        controller.record_battle()

        with pytest.raises(ProgressionError):
            controller.record_battle()
        assert controller.total_battles == 1

    def test_continue_returns_to_battling(self):
        controller = make_controller(interval=1)
        controller.record_battle()
        controller.continue_from_milestone()

        assert controller.state is ProgressionState.BATTLING
        assert controller.active_milestone is None
        assert controller.total_battles == 1

    def test_continue_without_review_rejected(self):
        with pytest.raises(ProgressionError):
            make_controller().continue_from_milestone()

    def test_reset_clears_count_and_snapshots(self):
        controller = make_controller(interval=2)
        controller.record_battle()
        controller.record_battle()
        seen_states = []

        controller.reset(lambda: seen_states.append(controller.state))

        assert seen_states == [ProgressionState.RESETTING]
        assert controller.state is ProgressionState.BATTLING
        assert controller.total_battles == 0
        assert controller.snapshotter.milestones == []

    def test_reset_returns_to_battling_when_clear_fails(self):
        controller = make_controller()

        def broken_clear():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            controller.reset(broken_clear)
        assert controller.state is ProgressionState.BATTLING

    def test_rewind_leaves_review_and_drops_later_snapshots(self):
        """Undoing the battle that reached a milestone removes its snapshot."""
        controller = make_controller(interval=2)
        controller.record_battle()
        controller.record_battle()

        controller.rewind(1)

        assert controller.total_battles == 1
        assert controller.state is ProgressionState.BATTLING
        assert controller.snapshotter.get_snapshot(2) is None

    def test_restore_review_reattaches_snapshot(self):
        controller = make_controller(interval=2)
        controller.record_battle()
        snapshot = controller.record_battle()

        controller.restore(2, ProgressionState.MILESTONE_REVIEW)

        assert controller.active_milestone == snapshot

    def test_restore_never_lands_in_resetting(self):
        controller = make_controller()
        controller.restore(3, ProgressionState.RESETTING)

        assert controller.state is ProgressionState.BATTLING
        assert controller.total_battles == 3
