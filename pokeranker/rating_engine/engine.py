"""Main RankingEngine integrating all rating components."""

import random
from collections.abc import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from pokeranker.config import EngineConfig
from pokeranker.events import EngineEventHandler, NullEventHandler
from pokeranker.logging import configure_logging, get_logger
from pokeranker.models import ALL_GENERATIONS, Candidate, filter_pool
from pokeranker.rating_engine.errors import (
    InvalidBattleError,
    InvalidReorderError,
    PoolTooSmallError,
    ProgressionError,
)
from pokeranker.rating_engine.implied import ImpliedBattleLog, infer_implied_battles
from pokeranker.rating_engine.models import (
    BattleOutcome,
    BattleStat,
    BattleType,
    MilestoneSnapshot,
    OutcomeSource,
    RankingEntry,
    RankingSuggestion,
    Rating,
    RefinementQueueEntry,
)
from pokeranker.rating_engine.persistence import (
    BackgroundStateWriter,
    EngineState,
    PersistedRating,
    StateStore,
)
from pokeranker.rating_engine.progression import ProgressionController, ProgressionState
from pokeranker.rating_engine.refinement import RefinementQueue
from pokeranker.rating_engine.selection import BattleSelector, battle_key
from pokeranker.rating_engine.snapshot import RankingSnapshotter
from pokeranker.rating_engine.store import RatingStore
from pokeranker.rating_engine.suggestions import SuggestionBook
from pokeranker.rating_engine.trueskill_update import PairwiseUpdateEngine

log = get_logger(__name__)


class PlayedBattle(BaseModel):
    """What one submitted battle took from the queues, kept for undo."""
    model_config = ConfigDict(frozen=True)

    participant_ids: tuple[int, ...]
    refinement_entry: RefinementQueueEntry | None = None
    used_suggestions: tuple[int, ...] = ()


class RankingEngine:
    """One user's rating session, shared by the battle and manual ranking views.

    Battles and drag-to-reorder gestures both end up as pairwise outcomes
    applied through the same RatingStore, so the two views always agree on
    the ranking. Each public operation validates its input before touching
    any state and then runs to completion.

    Features:
    - TrueSkill ratings with conservative-score ordering
    - Implied battles from manual reorders
    - Milestone snapshots every N battles
    - Refinement queue and ranking suggestions that steer battle selection
    - Undo of the last battle and best-effort background persistence
    """

    def __init__(
        self,
        candidates: list[Candidate] | None = None,
        config: EngineConfig | None = None,
        event_handler: EngineEventHandler | None = None,
        state_store: StateStore | None = None,
        generation: int = ALL_GENERATIONS,
    ):
        """Initialize the engine.

        Args:
            candidates: Candidate catalog (uses an empty pool if None)
            config: Engine configuration (uses defaults if None)
            event_handler: Observer for state changes (uses NullEventHandler if None)
            state_store: Where to save state; defaults to ``config.state_path``
                when that is set. A saved state found there is loaded.
            generation: Restrict battles to one generation (0 = all)
        """
        self.config = config or EngineConfig()
        self.event_handler = event_handler or NullEventHandler()
        self.rng = random.Random(self.config.rng_seed)

        self.update_engine = PairwiseUpdateEngine(self.config)
        self.store = RatingStore(self.update_engine)
        self.snapshotter = RankingSnapshotter(
            self.store, confidence_full_sigma=self.config.confidence_full_sigma
        )
        self.refinement_queue = RefinementQueue(self.config.refinement_opponents, rng=self.rng)
        self.suggestions = SuggestionBook()
        self.selector = BattleSelector(
            self.refinement_queue,
            recent_window=self.config.recent_window,
            rng=self.rng,
            suggestions=self.suggestions,
        )
        self.progression = ProgressionController(
            self.snapshotter,
            milestone_interval=self.config.milestone_interval,
            milestone_thresholds=self.config.milestone_thresholds,
        )
        self.implied_log = ImpliedBattleLog(self.config.implied_log_size)

        self.battle_type = BattleType(self.config.battle_type)
        self.pool: list[Candidate] = []
        self.current_battle: list[Candidate] | None = None
        self._current_refinement: RefinementQueueEntry | None = None
        self._played: dict[int, PlayedBattle] = {}
        self.set_pool(candidates or [], generation)

        if state_store is None and self.config.state_path:
            state_store = StateStore(self.config.state_path)
        self.state_store = state_store
        self._writer: BackgroundStateWriter | None = None
        if self.state_store is not None:
            saved = self.state_store.load()
            if saved is not None:
                self.load_state(saved)
            if self.config.persist_in_background:
                self._writer = BackgroundStateWriter(self.state_store)

    @classmethod
    def from_env(
        cls,
        candidates: list[Candidate] | None = None,
        cli_mode: bool = False,
        environ: Mapping[str, str] | None = None,
        event_handler: EngineEventHandler | None = None,
        **overrides,
    ) -> "RankingEngine":
        """Build an engine for a host application.

        Reads ``POKERANKER_*`` settings, configures logging at the configured
        level and returns the engine.

        Args:
            candidates: Candidate catalog
            cli_mode: Use the console log renderer instead of JSON
            environ: Environment to read (defaults to ``os.environ``)
            event_handler: Observer for state changes
            **overrides: Config values that win over the environment
        """
        config = EngineConfig.from_env(environ=environ, **overrides)
        configure_logging(cli_mode=cli_mode, log_level=config.log_level)
        log.info("engine_configured", log_level=config.log_level,
                 battle_type=config.battle_type, state_path=config.state_path)
        return cls(candidates, config, event_handler=event_handler)

    @property
    def total_battles(self) -> int:
        return self.progression.total_battles

    @property
    def state(self) -> ProgressionState:
        return self.progression.state

    def get_rankings(self) -> list[RankingEntry]:
        return self.snapshotter.compute_rankings()

    def get_milestone_snapshot(self, battle_count: int) -> MilestoneSnapshot | None:
        return self.snapshotter.get_snapshot(battle_count)

    @property
    def milestones(self) -> list[MilestoneSnapshot]:
        return self.snapshotter.milestones

    @property
    def outcome_history(self) -> tuple[BattleOutcome, ...]:
        return self.store.history

    def set_pool(self, candidates: list[Candidate], generation: int = ALL_GENERATIONS) -> None:
        """Replace the candidate pool, optionally filtered to one generation."""
        self.snapshotter.update_catalog(candidates)
        self.pool = filter_pool(candidates, generation)
        self._discard_current()
        log.info("pool_set", candidates=len(candidates), pool=len(self.pool), generation=generation)

    def next_battle(self, battle_type: BattleType | str | None = None) -> list[Candidate] | None:
        """Return the battle to present, selecting one if needed.

        Changing the battle type discards the current battle. Returns None
        while a milestone review is open.

        Raises:
            PoolTooSmallError: if the pool cannot fill the battle
        """
        if battle_type is not None and BattleType(battle_type) is not self.battle_type:
            self.battle_type = BattleType(battle_type)
            self._discard_current()

        if self.state is not ProgressionState.BATTLING:
            return None
        if self.current_battle is None:
            self._select_next()
        return self.current_battle

    def _select_next(self) -> None:
        battle_counts = {cid: stat.battle_count for cid, stat in self.store.stats().items()}
        self.current_battle = self.selector.select_next(
            self.pool,
            self.battle_type,
            exclude_last_participants=self.config.exclude_last_participants,
            battle_counts=battle_counts,
        )
        self._current_refinement = self.selector.last_refinement_entry
        self.event_handler.on_battle_selected(
            participants=list(self.current_battle),
            refinement=self.selector.last_was_refinement,
            suggestion=self.selector.last_was_suggestion,
        )

    def _try_select_next(self) -> None:
        try:
            self._select_next()
        except PoolTooSmallError as e:
            self.current_battle = None
            log.warning("next_battle_unavailable", reason=str(e))

    def _discard_current(self) -> None:
        """Drop the current battle unplayed, returning any refinement it consumed."""
        entry = self._current_refinement
        self.current_battle = None
        self._current_refinement = None
        if entry is not None:
            self.refinement_queue.give_back(entry)
            self.event_handler.on_refinement_queue_changed(entries=self.refinement_queue.entries)

    def submit_battle_result(
        self,
        battle_type: BattleType | str,
        participant_ids: Sequence[int],
        winner_ids: Sequence[int],
    ) -> list[BattleOutcome]:
        """Apply a completed battle.

        Every winner beats every non-winner, so a triplet with one winner
        yields two outcomes. The battle counts once toward milestones, and
        suggestions for its participants are marked used.

        Returns:
            The applied outcomes, in application order

        Raises:
            InvalidBattleError: participants do not fit the battle type or
                winners are not a proper subset of them
            ProgressionError: a milestone review is open
        """
        try:
            battle_type = BattleType(battle_type)
        except ValueError:
            self._reject_battle(f"Unknown battle type: {battle_type!r}", participant_ids)

        participants = list(participant_ids)
        winners = list(dict.fromkeys(winner_ids))

        if len(participants) != battle_type.size:
            self._reject_battle(
                f"{battle_type.value} battles need {battle_type.size} participants, got {len(participants)}",
                participants,
            )
        if len(set(participants)) != len(participants):
            self._reject_battle("Battle participants must be distinct", participants)
        if not winners or any(w not in participants for w in winners):
            self._reject_battle("Winners must be chosen from the participants", participants)
        if len(winners) == len(participants):
            self._reject_battle("At least one participant must lose", participants)

        if self.state is not ProgressionState.BATTLING:
            raise ProgressionError(f"Cannot submit a battle while in {self.state.value}")

        presented = self.current_battle is not None and (
            battle_key([c.id for c in self.current_battle]) == battle_key(participants)
        )
        refinement_entry = self._current_refinement if presented else None
        if not presented:
            self._discard_current()

        battle_number = self.total_battles + 1
        losers = [p for p in participants if p not in winners]
        outcomes = [
            BattleOutcome(
                winner_id=winner_id,
                loser_id=loser_id,
                source=OutcomeSource.EXPLICIT,
                label=battle_type.value,
                battle_number=battle_number,
            )
            for winner_id in winners
            for loser_id in losers
        ]
        for outcome in outcomes:
            self.store.apply(outcome)
            self.event_handler.on_outcome_applied(outcome=outcome)

        used_suggestions = self.suggestions.mark_used(participants)
        self._played[battle_number] = PlayedBattle(
            participant_ids=tuple(participants),
            refinement_entry=refinement_entry,
            used_suggestions=tuple(used_suggestions),
        )

        snapshot = self.progression.record_battle()
        log.info("battle_submitted", battle_number=battle_number, battle_type=battle_type.value,
                 winners=winners, losers=losers)

        self.current_battle = None
        self._current_refinement = None
        if used_suggestions:
            self.event_handler.on_suggestions_changed(suggestions=self.suggestions.entries)
        self.event_handler.on_rankings_updated(rankings=self.get_rankings(), source="battle")
        if snapshot is not None:
            self.event_handler.on_milestone_reached(snapshot=snapshot)
        else:
            self._try_select_next()

        self._persist()
        return outcomes

    def _reject_battle(self, reason: str, participant_ids: Sequence[int]) -> None:
        log.warning("battle_rejected", reason=reason, participants=list(participant_ids))
        self._discard_current()
        raise InvalidBattleError(f"{reason}; select a new battle")

    def submit_manual_reorder(
        self,
        candidate_id: int,
        new_index: int,
        ordered_ids: Sequence[int],
    ) -> list[BattleOutcome]:
        """Turn a drag-and-drop move into implied battles and apply them.

        The whole sequence is computed and validated before the first
        outcome is applied.

        Raises:
            InvalidReorderError: unknown candidate or index out of range;
                ratings are left unchanged
        """
        try:
            implied = infer_implied_battles(candidate_id, new_index, ordered_ids)
        except InvalidReorderError as e:
            log.warning("reorder_rejected", candidate_id=candidate_id,
                        new_index=new_index, reason=str(e))
            raise

        outcomes = []
        for battle in implied:
            outcome = BattleOutcome(
                winner_id=battle.winner_id,
                loser_id=battle.loser_id,
                source=OutcomeSource.IMPLIED,
                label=battle.category,
            )
            self.store.apply(outcome)
            self.implied_log.record(battle, dragged_id=candidate_id)
            self.event_handler.on_outcome_applied(outcome=outcome)
            outcomes.append(outcome)

        log.info("reorder_applied", candidate_id=candidate_id, new_index=new_index,
                 implied_battles=len(outcomes))

        if self.config.queue_refinement_on_reorder:
            self._enqueue(candidate_id)

        self.event_handler.on_rankings_updated(rankings=self.get_rankings(), source="reorder")
        self._persist()
        return outcomes

    def enqueue_refinement(self, candidate_id: int) -> RefinementQueueEntry:
        """Flag a candidate for validation battles (no-op if already queued)."""
        entry = self._enqueue(candidate_id)
        self._persist()
        return entry

    def _enqueue(self, candidate_id: int) -> RefinementQueueEntry:
        already_queued = candidate_id in self.refinement_queue
        entry = self.refinement_queue.enqueue(candidate_id, [c.id for c in self.pool])
        if not already_queued:
            self.event_handler.on_refinement_queue_changed(entries=self.refinement_queue.entries)
        return entry

    def remove_refinement(self, candidate_id: int) -> None:
        """Unflag a candidate (no-op if it is not queued)."""
        if self.refinement_queue.remove(candidate_id):
            self.event_handler.on_refinement_queue_changed(entries=self.refinement_queue.entries)
            self._persist()

    def suggest(self, candidate_id: int, direction: str, strength: int) -> RankingSuggestion:
        """Hint that a candidate belongs higher ("up") or lower ("down").

        The candidate is pulled into an upcoming battle. The current battle
        is left alone.

        Raises:
            InvalidSuggestionError: unknown direction or strength outside 1-3
        """
        suggestion = self.suggestions.suggest(candidate_id, direction, strength)
        self.event_handler.on_suggestions_changed(suggestions=self.suggestions.entries)
        self._persist()
        return suggestion

    def remove_suggestion(self, candidate_id: int) -> None:
        """Drop a candidate's suggestion (no-op if it has none)."""
        if self.suggestions.remove(candidate_id):
            self.event_handler.on_suggestions_changed(suggestions=self.suggestions.entries)
            self._persist()

    def continue_from_milestone(self) -> None:
        """Close the milestone review and resume battling."""
        self.progression.continue_from_milestone()
        self._try_select_next()
        self._persist()

    def reset(self) -> None:
        """Restart from the empty initial state."""
        self.progression.reset(self._clear_state)
        log.info("engine_reset")
        self.event_handler.on_reset()
        self._try_select_next()
        self._persist()

    def _clear_state(self) -> None:
        self.store.clear()
        self.refinement_queue.clear()
        self.suggestions.clear()
        self.implied_log.clear()
        self.selector.clear()
        self.current_battle = None
        self._current_refinement = None
        self._played.clear()

    def undo_last_battle(self) -> bool:
        """Revert the most recent explicit battle.

        Ratings are rebuilt by replaying the remaining history, so implied
        battles applied after the undone battle are kept. The undone battle
        becomes the current battle again, and whatever the discarded next
        battle took from the refinement queue is given back.

        Returns:
            False if there was no battle to undo
        """
        history = self.store.history
        numbers = [o.battle_number for o in history
                   if o.source is OutcomeSource.EXPLICIT and o.battle_number is not None]
        if not numbers:
            return False

        last_number = max(numbers)

        def is_undone(outcome: BattleOutcome) -> bool:
            return outcome.source is OutcomeSource.EXPLICIT and outcome.battle_number == last_number

        undone = [o for o in history if is_undone(o)]
        remaining = [o for o in history if not is_undone(o)]

        self._discard_current()
        self.store.replay(remaining)
        self.progression.rewind(self.total_battles - 1)

        played = self._played.pop(last_number, None)
        if played is None:
            # Battles restored from disk carry no selection record
            played = PlayedBattle(participant_ids=tuple(dict.fromkeys(
                cid for o in undone for cid in (o.winner_id, o.loser_id)
            )))
        if self.suggestions.mark_unused(played.used_suggestions):
            self.event_handler.on_suggestions_changed(suggestions=self.suggestions.entries)

        catalog = self.snapshotter.catalog
        restorable = len(played.participant_ids) == self.battle_type.size and all(
            cid in catalog for cid in played.participant_ids
        )
        if restorable:
            self.current_battle = [catalog[cid] for cid in played.participant_ids]
            self._current_refinement = played.refinement_entry
            self.selector.mark_presented(played.participant_ids, played.refinement_entry)
        elif played.refinement_entry is not None:
            self.refinement_queue.give_back(played.refinement_entry)
            self.event_handler.on_refinement_queue_changed(entries=self.refinement_queue.entries)

        log.info("battle_undone", battle_number=last_number, total_battles=self.total_battles)
        self.event_handler.on_rankings_updated(rankings=self.get_rankings(), source="undo")
        self._persist()
        return True

    def export_state(self) -> EngineState:
        ratings = self.store.ratings()
        stats = self.store.stats()
        return EngineState(
            ratings={
                cid: PersistedRating(
                    mu=rating.mu,
                    sigma=rating.sigma,
                    battle_count=stats[cid].battle_count,
                    wins=stats[cid].wins,
                    losses=stats[cid].losses,
                )
                for cid, rating in ratings.items()
            },
            total_battles=self.total_battles,
            progression_state=self.state,
            outcome_history=list(self.store.history),
            milestone_list=self.snapshotter.milestones,
            refinement_queue=self.refinement_queue.entries,
            suggestions=self.suggestions.entries,
        )

    def load_state(self, state: EngineState) -> None:
        """Replace all in-memory state with a saved one."""
        self.store.restore(
            ratings={cid: Rating(mu=r.mu, sigma=r.sigma) for cid, r in state.ratings.items()},
            stats={
                cid: BattleStat(battle_count=r.battle_count, wins=r.wins, losses=r.losses)
                for cid, r in state.ratings.items()
            },
            history=state.outcome_history,
        )
        self.snapshotter.restore(state.milestone_list)
        self.refinement_queue.restore(state.refinement_queue)
        self.suggestions.restore(state.suggestions)
        self.progression.restore(state.total_battles, state.progression_state)
        self.implied_log.clear()
        self.selector.clear()
        self.current_battle = None
        self._current_refinement = None
        self._played.clear()
        log.info("state_loaded", total_battles=state.total_battles, ratings=len(state.ratings))

    def _persist(self) -> None:
        """Save state if a store is configured. Never raises into the caller."""
        if self.state_store is None:
            return
        state = self.export_state()
        if self._writer is not None:
            self._writer.submit(state)
            self._report_save_failures(self._writer.pop_failures())
        elif not self.state_store.save(state):
            self._report_save_failures([self.state_store.last_error or OSError("state save failed")])

    def _report_save_failures(self, errors: list[Exception]) -> None:
        for error in errors:
            self.event_handler.on_persistence_failed(error=error)

    def flush(self, timeout: float | None = None) -> None:
        """Wait for background saves to finish and report any failures."""
        if self._writer is None:
            return
        self._writer.flush(timeout)
        self._report_save_failures(self._writer.pop_failures())

    def close(self) -> None:
        """Flush pending saves and stop the background writer."""
        if self._writer is None:
            return
        self.flush()
        self._writer.close()
        self._writer = None

    def __enter__(self) -> "RankingEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
