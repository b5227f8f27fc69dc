"""Engine configuration.

Defaults mirror the TrueSkill reference environment and the battle app's
milestone schedule. Every field can be overridden from the environment with
the ``POKERANKER_`` prefix, e.g. ``POKERANKER_MILESTONE_INTERVAL=50``.
"""

from __future__ import annotations

import json
import os
from typing import Literal

from pydantic import BaseModel, field_validator

ENV_PREFIX = "POKERANKER_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EngineConfig(BaseModel):
    """Configuration for the rating and ranking engine."""

    # TrueSkill environment
    mu: float = 25.0
    sigma: float = 25.0 / 3.0
    beta: float = 25.0 / 6.0
    tau: float = 25.0 / 300.0
    draw_probability: float = 0.10

    # Sigma at which confidence reads 0%
    confidence_full_sigma: float = 8.33

    # Battles
    battle_type: Literal["pairs", "triplets"] = "pairs"
    recent_window: int = 3  # Battles whose participants are avoided when possible
    exclude_last_participants: bool = False

    # Milestones: explicit thresholds win over the interval
    milestone_interval: int = 25
    milestone_thresholds: list[int] | None = None

    # Refinement
    refinement_opponents: int = 3
    queue_refinement_on_reorder: bool = False

    # Observability
    implied_log_size: int = 10
    log_level: str = "INFO"

    # Persistence (None disables it)
    state_path: str | None = None
    persist_in_background: bool = True  # Write on a worker thread instead of the caller's

    rng_seed: int | None = None

    @field_validator("milestone_interval", "implied_log_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("sigma", "beta", "confidence_full_sigma")
    @classmethod
    def _positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("milestone_thresholds")
    @classmethod
    def _sorted_thresholds(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None
        if any(t < 1 for t in value):
            raise ValueError("milestone thresholds must be positive")
        return sorted(set(value))

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        environ: dict[str, str] | None = None,
        **overrides,
    ) -> EngineConfig:
        """Build a config from environment variables.

        List values (``milestone_thresholds``) are read as JSON arrays or
        comma-separated integers. Explicit keyword overrides win over the
        environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{prefix}{name.upper()}")
            if raw is None or raw == "":
                continue
            if name == "milestone_thresholds":
                values[name] = _parse_int_list(raw)
            else:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)


def _parse_int_list(raw: str) -> list[int]:
    raw = raw.strip()
    if raw.startswith("["):
        return [int(v) for v in json.loads(raw)]
    return [int(part) for part in raw.split(",") if part.strip()]


DEFAULT_CONFIG = EngineConfig()

__all__ = ["DEFAULT_CONFIG", "ENV_PREFIX", "EngineConfig"]
