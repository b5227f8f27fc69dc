"""Battle count, milestones and mode transitions."""

from collections.abc import Callable
from enum import Enum

from pokeranker.logging import get_logger
from pokeranker.rating_engine.errors import ProgressionError
from pokeranker.rating_engine.models import MilestoneSnapshot
from pokeranker.rating_engine.snapshot import RankingSnapshotter

log = get_logger(__name__)


class ProgressionState(str, Enum):
    BATTLING = "battling"
    MILESTONE_REVIEW = "milestone_review"
    RESETTING = "resetting"  # transient, only observable inside reset()


class ProgressionController:
    """State machine over the total battle count.

    Battling --(battle crosses a milestone)--> MilestoneReview
    MilestoneReview --(continue)--> Battling
    any --(restart)--> Resetting --> Battling
    """

    def __init__(
        self,
        snapshotter: RankingSnapshotter,
        milestone_interval: int = 25,
        milestone_thresholds: list[int] | None = None,
    ):
        """Initialize the controller.

        Args:
            snapshotter: Captures the ranking when a milestone is reached
            milestone_interval: A milestone every N battles
            milestone_thresholds: Explicit milestone battle counts; when given
                the interval is ignored
        """
        self.snapshotter = snapshotter
        self.milestone_interval = milestone_interval
        self.milestone_thresholds = sorted(set(milestone_thresholds)) if milestone_thresholds else None
        self.total_battles = 0
        self.state = ProgressionState.BATTLING
        self.active_milestone: MilestoneSnapshot | None = None

    def is_milestone(self, battle_count: int) -> bool:
        if battle_count <= 0:
            return False
        if self.milestone_thresholds is not None:
            return battle_count in self.milestone_thresholds
        return battle_count % self.milestone_interval == 0

    def next_milestone(self) -> int | None:
        """First milestone strictly after the current total, if any."""
        if self.milestone_thresholds is not None:
            upcoming = [t for t in self.milestone_thresholds if t > self.total_battles]
            return upcoming[0] if upcoming else None
        return (self.total_battles // self.milestone_interval + 1) * self.milestone_interval

    def battles_until_next_milestone(self) -> int | None:
        upcoming = self.next_milestone()
        return None if upcoming is None else upcoming - self.total_battles

    def record_battle(self) -> MilestoneSnapshot | None:
        """Count one completed battle.

        Returns:
            The snapshot captured if this battle reached a milestone
        """
        if self.state is not ProgressionState.BATTLING:
            raise ProgressionError(f"Cannot record a battle while in {self.state.value}")

        self.total_battles += 1
        if not self.is_milestone(self.total_battles):
            return None

        snapshot = self.snapshotter.capture_snapshot(self.total_battles)
        self.active_milestone = snapshot
        self.state = ProgressionState.MILESTONE_REVIEW
        log.info("milestone_reached", battle_count=self.total_battles)
        return snapshot

    def continue_from_milestone(self) -> None:
        """Leave the review and resume battling. Ratings are untouched."""
        if self.state is not ProgressionState.MILESTONE_REVIEW:
            raise ProgressionError(f"No milestone review in progress (state: {self.state.value})")
        self.active_milestone = None
        self.state = ProgressionState.BATTLING
        log.info("milestone_review_closed", battle_count=self.total_battles)

    def reset(self, clear: Callable[[], None]) -> None:
        """Run ``clear`` as part of an atomic restart and return to battling."""
        self.state = ProgressionState.RESETTING
        try:
            clear()
            self.snapshotter.clear()
            self.total_battles = 0
            self.active_milestone = None
        finally:
            self.state = ProgressionState.BATTLING
        log.info("progression_reset")

    def rewind(self, total_battles: int) -> None:
        """Step the count back (undo). Leaves any milestone review."""
        self.total_battles = max(0, total_battles)
        self.snapshotter.discard_after(self.total_battles)
        self.active_milestone = None
        self.state = ProgressionState.BATTLING

    def restore(self, total_battles: int, state: ProgressionState) -> None:
        self.total_battles = total_battles
        self.state = ProgressionState.BATTLING if state is ProgressionState.RESETTING else state
        self.active_milestone = (
            self.snapshotter.get_snapshot(total_battles)
            if self.state is ProgressionState.MILESTONE_REVIEW else None
        )
