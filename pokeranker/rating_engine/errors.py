"""Exceptions raised by the rating engine.

All of them derive from ValueError so callers that already guard engine
calls with ``except ValueError`` keep working.
"""


class RankingEngineError(ValueError):
    """Base class for rejected engine operations."""


class InvalidReorderError(RankingEngineError):
    """A manual reorder referenced an unknown candidate or an out-of-range index."""


class InvalidBattleError(RankingEngineError):
    """A battle submission does not match its declared battle type.

    The engine drops its current battle when this is raised; call
    ``next_battle()`` to get a fresh selection.
    """


class PoolTooSmallError(RankingEngineError):
    """The candidate pool cannot fill a battle of the requested size."""


class InvalidOutcomeError(RankingEngineError):
    """An outcome names the same candidate as winner and loser."""


class ProgressionError(RankingEngineError):
    """An operation is not allowed in the current progression state."""


class InvalidSuggestionError(RankingEngineError):
    """A ranking suggestion has an unknown direction or an out-of-range strength."""
