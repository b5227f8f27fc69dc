"""Data models for the rating engine."""

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from pokeranker.models import Candidate

DEFAULT_MU = 25.0
DEFAULT_SIGMA = 25.0 / 3.0

ImpliedCategory = Literal["above1", "above2", "below1", "below2"]


def utc_now() -> datetime:
    return datetime.now(UTC)


class BattleType(str, Enum):
    """Number of candidates shown per battle."""
    PAIRS = "pairs"
    TRIPLETS = "triplets"

    @property
    def size(self) -> int:
        return 2 if self is BattleType.PAIRS else 3


class OutcomeSource(str, Enum):
    EXPLICIT = "explicit"  # user picked a winner in a battle
    IMPLIED = "implied"    # inferred from a manual reorder


class Rating(BaseModel):
    """Gaussian skill belief for one candidate."""
    model_config = ConfigDict(frozen=True)

    mu: float = DEFAULT_MU
    sigma: float = DEFAULT_SIGMA


class BattleStat(BaseModel):
    """Battle counters for one candidate."""
    battle_count: int = 0
    wins: int = 0
    losses: int = 0


class BattleOutcome(BaseModel):
    """Immutable audit record of one applied win/loss."""
    model_config = ConfigDict(frozen=True)

    winner_id: int
    loser_id: int
    source: OutcomeSource
    label: str
    timestamp: datetime = Field(default_factory=utc_now)
    battle_number: int | None = None  # total battles after the submission (explicit only)


class RankingEntry(BaseModel):
    """One row of a derived ranking. Never stored as the source of truth."""
    rank: int
    candidate_id: int
    candidate: Candidate | None = None
    mu: float
    sigma: float
    score: float       # conservative score: mu - 3 * sigma
    confidence: float  # 0-100
    battle_count: int = 0
    wins: int = 0
    losses: int = 0


class MilestoneSnapshot(BaseModel):
    """Ranking order frozen at a milestone battle count."""
    model_config = ConfigDict(frozen=True)

    battle_count: int
    ordered_candidate_ids: tuple[int, ...]
    captured_at: datetime = Field(default_factory=utc_now)


class RefinementQueueEntry(BaseModel):
    """A candidate flagged for extra validation battles."""
    model_config = ConfigDict(frozen=True)

    candidate_id: int
    opponent_ids: tuple[int, ...] = ()
    enqueued_at: datetime = Field(default_factory=utc_now)


class ImpliedBattle(BaseModel):
    """A synthetic pairwise result inferred from a reorder."""
    model_config = ConfigDict(frozen=True)

    winner_id: int
    loser_id: int
    category: ImpliedCategory


class ImpliedBattleRecord(BaseModel):
    """Audit log row for one applied implied battle."""
    model_config = ConfigDict(frozen=True)

    sequence: int
    category: ImpliedCategory
    dragged_id: int
    opponent_id: int
    winner_id: int
    timestamp: datetime = Field(default_factory=utc_now)


SuggestionDirection = Literal["up", "down"]


class RankingSuggestion(BaseModel):
    """User hint that a candidate belongs higher or lower than it ranks.

    Suggested candidates are pulled into battles ahead of random picks until
    one battle with them has been submitted.
    """
    model_config = ConfigDict(frozen=True)

    candidate_id: int
    direction: SuggestionDirection
    strength: int = Field(ge=1, le=3)
    used: bool = False
    created_at: datetime = Field(default_factory=utc_now)
