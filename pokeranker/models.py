from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Inclusive national dex ranges per generation
GENERATION_RANGES: dict[int, tuple[int, int]] = {
    1: (1, 151),
    2: (152, 251),
    3: (252, 386),
    4: (387, 493),
    5: (494, 649),
    6: (650, 721),
    7: (722, 809),
    8: (810, 905),
    9: (906, 1025),
}

ALL_GENERATIONS = 0


def generation_for_id(candidate_id: int) -> int | None:
    """Map a Pokémon id to its generation.

    Alternate forms use ids above 10000; those fold back onto the base
    species by taking the id modulo 1000, then modulo 10000.

    Returns:
        Generation number (1-9), or None if the id maps to no generation
    """
    for generation, (low, high) in GENERATION_RANGES.items():
        if low <= candidate_id <= high:
            return generation

    if candidate_id > 10000:
        for base in (candidate_id % 1000, candidate_id % 10000):
            if 1 <= base <= 1025:
                return generation_for_id(base)

    return None


class Candidate(BaseModel):
    """A rankable Pokémon supplied by the catalog."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    image_ref: str | None = None
    type_tags: tuple[str, ...] = Field(default_factory=tuple)
    generation: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_generation(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("generation") is None and "id" in data:
            data = {**data, "generation": generation_for_id(int(data["id"]))}
        return data


def filter_pool(candidates: list[Candidate], generation: int = ALL_GENERATIONS) -> list[Candidate]:
    """Restrict a candidate pool to one generation (0 keeps everything)."""
    if generation == ALL_GENERATIONS:
        return list(candidates)
    return [c for c in candidates if c.generation == generation]
