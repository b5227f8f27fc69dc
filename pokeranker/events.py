"""Event system for notifying views about engine state changes.

The battle view and the manual ranking view both observe one engine. Instead
of broadcasting string-named events, the engine calls a typed handler that
each presentation layer implements.
"""

from typing import TYPE_CHECKING, Any, Protocol

from pokeranker.logging import get_logger
from pokeranker.models import Candidate

if TYPE_CHECKING:
    from pokeranker.rating_engine.models import (
        BattleOutcome,
        MilestoneSnapshot,
        RankingEntry,
        RankingSuggestion,
        RefinementQueueEntry,
    )


class EngineEventHandler(Protocol):
    """Protocol for handlers that react to engine state changes."""

    def on_outcome_applied(
        self,
        outcome: "BattleOutcome",
        **kwargs: Any
    ) -> None:
        """Called after one outcome has updated the ratings.

        Args:
            outcome: The applied outcome (explicit or implied)
            **kwargs: Additional context
        """
        ...

    def on_rankings_updated(
        self,
        rankings: list["RankingEntry"],
        **kwargs: Any
    ) -> None:
        """Called once a submission or reorder has fully completed.

        Args:
            rankings: Freshly sorted rankings
            **kwargs: Additional context
        """
        ...

    def on_battle_selected(
        self,
        participants: list[Candidate],
        **kwargs: Any
    ) -> None:
        """Called when the next battle has been chosen.

        Args:
            participants: Candidates to present
            **kwargs: Additional context (e.g. ``refinement=True``)
        """
        ...

    def on_milestone_reached(
        self,
        snapshot: "MilestoneSnapshot",
        **kwargs: Any
    ) -> None:
        """Called when the battle count crosses a milestone threshold.

        Args:
            snapshot: Frozen ranking at the milestone
            **kwargs: Additional context
        """
        ...

    def on_refinement_queue_changed(
        self,
        entries: list["RefinementQueueEntry"],
        **kwargs: Any
    ) -> None:
        """Called when candidates are flagged or unflagged for validation.

        Args:
            entries: Queue contents after the change
            **kwargs: Additional context
        """
        ...

    def on_suggestions_changed(
        self,
        suggestions: list["RankingSuggestion"],
        **kwargs: Any
    ) -> None:
        """Called when a suggestion is added, removed, used or restored.

        Args:
            suggestions: All suggestions after the change
            **kwargs: Additional context
        """
        ...

    def on_reset(self, **kwargs: Any) -> None:
        """Called after a full engine reset."""
        ...

    def on_persistence_failed(
        self,
        error: Exception,
        **kwargs: Any
    ) -> None:
        """Called when saving state failed. In-memory state is unaffected.

        Args:
            error: The underlying exception
            **kwargs: Additional context
        """
        ...


class NullEventHandler:
    """Null event handler that does nothing.

    Useful as a default when no view is attached.
    """

    def on_outcome_applied(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_rankings_updated(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_battle_selected(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_milestone_reached(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_refinement_queue_changed(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_suggestions_changed(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_reset(self, *args: Any, **kwargs: Any) -> None:
        pass

    def on_persistence_failed(self, *args: Any, **kwargs: Any) -> None:
        pass


class LoggingEventHandler:
    """Writes every engine event to the structured log."""

    def __init__(self, logger_name: str = "pokeranker.events"):
        self.log = get_logger(logger_name)

    def on_outcome_applied(self, outcome: "BattleOutcome", **kwargs: Any) -> None:
        self.log.debug(
            "outcome_applied",
            winner_id=outcome.winner_id,
            loser_id=outcome.loser_id,
            source=outcome.source.value,
            label=outcome.label,
        )

    def on_rankings_updated(self, rankings: list["RankingEntry"], **kwargs: Any) -> None:
        top = [entry.candidate_id for entry in rankings[:5]]
        self.log.info("rankings_updated", ranked=len(rankings), top=top)

    def on_battle_selected(self, participants: list[Candidate], **kwargs: Any) -> None:
        self.log.info(
            "battle_selected",
            participants=[c.id for c in participants],
            refinement=kwargs.get("refinement", False),
        )

    def on_milestone_reached(self, snapshot: "MilestoneSnapshot", **kwargs: Any) -> None:
        self.log.info(
            "milestone_reached",
            battle_count=snapshot.battle_count,
            ranked=len(snapshot.ordered_candidate_ids),
        )

    def on_refinement_queue_changed(
        self,
        entries: list["RefinementQueueEntry"],
        **kwargs: Any
    ) -> None:
        self.log.info("refinement_queue_changed", queued=[e.candidate_id for e in entries])

    def on_suggestions_changed(self, suggestions: list["RankingSuggestion"], **kwargs: Any) -> None:
        self.log.info(
            "suggestions_changed",
            pending=[s.candidate_id for s in suggestions if not s.used],
            used=[s.candidate_id for s in suggestions if s.used],
        )

    def on_reset(self, **kwargs: Any) -> None:
        self.log.info("engine_reset")

    def on_persistence_failed(self, error: Exception, **kwargs: Any) -> None:
        self.log.error("persistence_failed", error=str(error), error_type=type(error).__name__)
