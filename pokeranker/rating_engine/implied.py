"""Implied battles inferred from manual reordering.

Dropping candidate X at index ``p`` of an ordered list is read as evidence
about its neighbors in the resulting list:

    p-2  above2  beats X   (once)
    p-1  above1  beats X   (twice)
    p    X
    p+1  below1  loses to X (twice)
    p+2  below2  loses to X (once)

Immediate neighbors carry twice the weight of the ones two slots away. The
rule ignores the direction and distance of the move.
"""

from collections import deque
from collections.abc import Sequence

from pokeranker.logging import get_logger
from pokeranker.rating_engine.errors import InvalidReorderError
from pokeranker.rating_engine.models import ImpliedBattle, ImpliedBattleRecord

log = get_logger(__name__)

# (category, offset from p, frequency); evaluated in this order
NEIGHBOR_RULES: tuple[tuple[str, int, int], ...] = (
    ("above1", -1, 2),
    ("above2", -2, 1),
    ("below1", 1, 2),
    ("below2", 2, 1),
)


def resolve_order(candidate_id: int, new_index: int, ordered_ids: Sequence[int]) -> list[int]:
    """Return the list after the move, validating the input.

    ``ordered_ids`` may already reflect the move (the candidate sits at
    ``new_index``) or be the order before it, in which case the candidate is
    removed and reinserted at ``new_index``.

    Raises:
        InvalidReorderError: unknown candidate, duplicate ids, or index out of range
    """
    order = list(ordered_ids)
    if candidate_id not in order:
        raise InvalidReorderError(f"Candidate {candidate_id} is not in the supplied order")
    if len(set(order)) != len(order):
        raise InvalidReorderError("Supplied order contains duplicate candidate ids")
    if not 0 <= new_index < len(order):
        raise InvalidReorderError(
            f"Index {new_index} is out of range for a list of {len(order)} candidates"
        )

    if order[new_index] != candidate_id:
        order.remove(candidate_id)
        order.insert(new_index, candidate_id)
    return order


def infer_implied_battles(
    candidate_id: int,
    new_index: int,
    ordered_ids: Sequence[int],
) -> list[ImpliedBattle]:
    """Translate a reorder into an ordered list of synthetic outcomes.

    Pure: nothing is applied here. The caller feeds the result through the
    same rating store path as explicit battles, one outcome at a time.

    Args:
        candidate_id: The dragged candidate
        new_index: Its index in the list after the move
        ordered_ids: Full ordered id list (before or after the move)

    Returns:
        Outcomes in application order (above1 x2, above2, below1 x2, below2)
    """
    order = resolve_order(candidate_id, new_index, ordered_ids)
    battles: list[ImpliedBattle] = []

    for category, offset, frequency in NEIGHBOR_RULES:
        neighbor_index = new_index + offset
        if not 0 <= neighbor_index < len(order):
            continue
        neighbor_id = order[neighbor_index]
        if neighbor_id == candidate_id:
            continue

        if offset < 0:
            winner_id, loser_id = neighbor_id, candidate_id
        else:
            winner_id, loser_id = candidate_id, neighbor_id

        battles.extend(
            ImpliedBattle(winner_id=winner_id, loser_id=loser_id, category=category)
            for _ in range(frequency)
        )

    return battles


class ImpliedBattleLog:
    """Bounded audit trail of applied implied battles.

    Keeps only the most recent ``max_size`` records; the sequence counter
    keeps running so every record stays uniquely numbered until ``clear``.
    """

    def __init__(self, max_size: int = 10):
        self.max_size = max_size
        self._records: deque[ImpliedBattleRecord] = deque(maxlen=max_size)
        self._next_sequence = 1

    def __len__(self) -> int:
        return len(self._records)

    def record(self, battle: ImpliedBattle, dragged_id: int) -> ImpliedBattleRecord:
        opponent_id = battle.loser_id if battle.winner_id == dragged_id else battle.winner_id
        entry = ImpliedBattleRecord(
            sequence=self._next_sequence,
            category=battle.category,
            dragged_id=dragged_id,
            opponent_id=opponent_id,
            winner_id=battle.winner_id,
        )
        self._next_sequence += 1
        self._records.append(entry)
        return entry

    @property
    def records(self) -> list[ImpliedBattleRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._next_sequence = 1
        log.debug("implied_log_cleared")
