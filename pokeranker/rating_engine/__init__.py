"""TrueSkill rating and ranking engine for Pokémon preference lists."""

from pokeranker.rating_engine.engine import RankingEngine
from pokeranker.rating_engine.errors import (
    InvalidBattleError,
    InvalidOutcomeError,
    InvalidReorderError,
    InvalidSuggestionError,
    PoolTooSmallError,
    ProgressionError,
    RankingEngineError,
)
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
from pokeranker.rating_engine.progression import ProgressionState
from pokeranker.rating_engine.suggestions import SuggestionBook

__all__ = [
    "RankingEngine",
    "BattleOutcome",
    "BattleStat",
    "BattleType",
    "MilestoneSnapshot",
    "OutcomeSource",
    "RankingEntry",
    "RankingSuggestion",
    "Rating",
    "RefinementQueueEntry",
    "ProgressionState",
    "SuggestionBook",
    "RankingEngineError",
    "InvalidBattleError",
    "InvalidOutcomeError",
    "InvalidReorderError",
    "InvalidSuggestionError",
    "PoolTooSmallError",
    "ProgressionError",
]
