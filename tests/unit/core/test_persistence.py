"""Unit tests for state persistence."""

import threading
from typing import Any

import pytest

from pokeranker.config import EngineConfig
from pokeranker.events import NullEventHandler
from pokeranker.models import Candidate
from pokeranker.rating_engine import ProgressionState, RankingEngine
from pokeranker.rating_engine.persistence import (
    STATE_VERSION,
    BackgroundStateWriter,
    EngineState,
    StateStore,
)

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


class FailureRecorder(NullEventHandler):
    def __init__(self):
        self.errors: list[Exception] = []

    def on_persistence_failed(self, *args: Any, **kwargs: Any) -> None:
        self.errors.append(kwargs["error"])


def make_candidates() -> list[Candidate]:
    return [Candidate(id=i, name=f"mon-{i}") for i in range(1, 9)]


def play(engine: RankingEngine, battles: int) -> None:
    for _ in range(battles):
        participants = [c.id for c in engine.next_battle()]
        engine.submit_battle_result("pairs", participants, participants[-1:])


class TestStateStore:
    """Tests for StateStore."""

    def test_missing_file_loads_none(self, tmp_path):
        assert StateStore(tmp_path / "state.json").load() is None

    def test_save_and_load(self, tmp_path):
        store = StateStore(tmp_path / "nested" / "state.json")
        state = EngineState(total_battles=3, progression_state=ProgressionState.MILESTONE_REVIEW)

        assert store.save(state) is True
        loaded = store.load()

        assert loaded == state
        assert loaded.version == STATE_VERSION
        assert list((tmp_path / "nested").iterdir()) == [tmp_path / "nested" / "state.json"]

    def test_corrupt_file_loads_none(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        store = StateStore(path)

        assert store.load() is None
        assert store.last_error is not None

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = StateStore(blocker / "state.json")

        assert store.save(EngineState()) is False
        assert isinstance(store.last_error, OSError)

    def test_delete(self, tmp_path):
        store = StateStore(tmp_path / "state.json")
        store.save(EngineState())

        store.delete()
        store.delete()

        assert store.load() is None


class TestEnginePersistence:
    """Tests for saving and restoring a whole engine."""

    def test_round_trip(self, tmp_path):
        """A new engine on the same path resumes exactly where the last one stopped."""
        config = EngineConfig(rng_seed=5, milestone_interval=4, state_path=str(tmp_path / "state.json"))
        engine = RankingEngine(make_candidates(), config)
        play(engine, 4)
        engine.submit_manual_reorder(3, 0, [1, 2, 3, 4])
        engine.enqueue_refinement(6)
        engine.suggest(2, "down", 3)
        engine.flush()

        resumed = RankingEngine(make_candidates(), config)

        assert resumed.total_battles == 4
        assert resumed.state is ProgressionState.MILESTONE_REVIEW
        assert resumed.progression.active_milestone == engine.get_milestone_snapshot(4)
        assert resumed.get_rankings() == engine.get_rankings()
        assert resumed.outcome_history == engine.outcome_history
        assert resumed.refinement_queue.entries == engine.refinement_queue.entries
        assert resumed.suggestions.entries == engine.suggestions.entries
        assert resumed.export_state() == engine.export_state()

    def test_resumed_engine_can_undo(self, tmp_path):
        config = EngineConfig(rng_seed=5, state_path=str(tmp_path / "state.json"))
        engine = RankingEngine(make_candidates(), config)
        engine.submit_battle_result("pairs", [1, 2], [2])
        engine.submit_battle_result("pairs", [3, 4], [3])
        engine.close()

        resumed = RankingEngine(make_candidates(), config)

        assert resumed.undo_last_battle() is True
        assert resumed.total_battles == 1
        assert [(o.winner_id, o.loser_id) for o in resumed.outcome_history] == [(2, 1)]

    def test_save_failure_is_not_fatal(self, tmp_path):
        """A failed write is reported but the submission still takes effect."""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        handler = FailureRecorder()
        engine = RankingEngine(
            make_candidates(),
            EngineConfig(rng_seed=1),
            event_handler=handler,
            state_store=StateStore(blocker / "state.json"),
        )

        outcomes = engine.submit_battle_result("pairs", [1, 2], [1])
        engine.flush()

        assert len(outcomes) == 1
        assert engine.total_battles == 1
        assert len(handler.errors) == 1
        assert isinstance(handler.errors[0], OSError)

    def test_no_store_configured(self):
        engine = RankingEngine(make_candidates(), EngineConfig(rng_seed=1))
        engine.submit_battle_result("pairs", [1, 2], [1])

        assert engine.state_store is None

    def test_synchronous_save_failure_is_reported(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        handler = FailureRecorder()
        engine = RankingEngine(
            make_candidates(),
            EngineConfig(rng_seed=1, persist_in_background=False),
            event_handler=handler,
            state_store=StateStore(blocker / "state.json"),
        )

        engine.submit_battle_result("pairs", [1, 2], [1])

        assert engine.total_battles == 1
        assert len(handler.errors) == 1

    def test_synchronous_save_is_immediate(self, tmp_path):
        store = StateStore(tmp_path / "state.json")
        engine = RankingEngine(
            make_candidates(), EngineConfig(rng_seed=1, persist_in_background=False), state_store=store
        )

        engine.submit_battle_result("pairs", [1, 2], [1])

        assert store.load().total_battles == 1


class SlowStore(StateStore):
    """StateStore whose writes wait until released."""

    def __init__(self, path):
        super().__init__(path)
        self.release = threading.Event()
        self.saves = 0

    def save(self, state: EngineState) -> bool:
        self.release.wait(timeout=10)
        self.saves += 1
        return super().save(state)


class TestBackgroundPersistence:
    """Tests for saving off the caller's thread."""

    def test_slow_disk_does_not_hold_up_battles(self, tmp_path):
        store = SlowStore(tmp_path / "state.json")
        engine = RankingEngine(make_candidates(), EngineConfig(rng_seed=2), state_store=store)

        play(engine, 3)

        assert engine.total_battles == 3
        assert engine.current_battle is not None
        assert store.saves == 0

        store.release.set()
        engine.flush(timeout=10)

        assert 1 <= store.saves <= 3
        assert store.load() == engine.export_state()
        engine.close()

    def test_latest_state_wins(self, tmp_path):
        store = SlowStore(tmp_path / "state.json")
        writer = BackgroundStateWriter(store)

        for total in range(1, 6):
            writer.submit(EngineState(total_battles=total))
        store.release.set()
        writer.flush(timeout=10)

        assert store.load().total_battles == 5
        assert store.saves <= 2
        assert writer.pop_failures() == []
        writer.close()

    def test_failures_collected(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        writer = BackgroundStateWriter(StateStore(blocker / "state.json"))

        writer.submit(EngineState())
        writer.flush(timeout=10)

        failures = writer.pop_failures()
        assert len(failures) == 1
        assert isinstance(failures[0], OSError)
        assert writer.pop_failures() == []
        writer.close()

    def test_context_manager_flushes_on_exit(self, tmp_path):
        store = StateStore(tmp_path / "state.json")

        with RankingEngine(make_candidates(), EngineConfig(rng_seed=2), state_store=store) as engine:
            engine.submit_battle_result("pairs", [1, 2], [2])

        assert store.load().total_battles == 1
