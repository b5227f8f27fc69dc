"""Persisted engine state and a best-effort JSON file store.

Saving is layered outside the rating computation: a failed write is logged
and reported, never raised, and never rolls back in-memory state.
``BackgroundStateWriter`` moves the disk write off the caller's thread so a
slow disk never holds up the next battle.
"""

from __future__ import annotations

import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from pokeranker.logging import get_logger
from pokeranker.rating_engine.models import (
    BattleOutcome,
    MilestoneSnapshot,
    RankingSuggestion,
    RefinementQueueEntry,
)
from pokeranker.rating_engine.progression import ProgressionState

log = get_logger(__name__)

STATE_VERSION = 1


class PersistedRating(BaseModel):
    mu: float
    sigma: float
    battle_count: int = 0
    wins: int = 0
    losses: int = 0


class EngineState(BaseModel):
    """Everything a persistence layer has to round-trip."""
    version: int = STATE_VERSION
    ratings: dict[int, PersistedRating] = Field(default_factory=dict)
    total_battles: int = 0
    progression_state: ProgressionState = ProgressionState.BATTLING
    outcome_history: list[BattleOutcome] = Field(default_factory=list)
    milestone_list: list[MilestoneSnapshot] = Field(default_factory=list)
    refinement_queue: list[RefinementQueueEntry] = Field(default_factory=list)
    suggestions: list[RankingSuggestion] = Field(default_factory=list)


class StateStore:
    """Stores one EngineState as JSON on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.last_error: Exception | None = None

    def save(self, state: EngineState) -> bool:
        """Write the state atomically (temp file + rename).

        Returns:
            True on success, False if the write failed
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = state.model_dump_json(indent=2)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, ValueError) as e:
            self.last_error = e
            log.error("state_save_failed", path=str(self.path), error=str(e))
            return False

        self.last_error = None
        log.debug("state_saved", path=str(self.path), total_battles=state.total_battles)
        return True

    def load(self) -> EngineState | None:
        """Read the saved state, or None if missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            return EngineState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            self.last_error = e
            log.error("state_load_failed", path=str(self.path), error=str(e))
            return None

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            log.error("state_delete_failed", path=str(self.path), error=str(e))


class BackgroundStateWriter:
    """Saves states through a StateStore on one worker thread.

    Only the newest pending state is written: states submitted while a write
    is in progress replace each other. Failures are collected and handed
    back through ``pop_failures`` on the caller's thread.
    """

    def __init__(self, store: StateStore):
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pokeranker-save")
        self._lock = threading.Lock()
        self._pending: EngineState | None = None
        self._scheduled = False
        self._failures: list[Exception] = []

    def submit(self, state: EngineState) -> None:
        """Queue a state for saving and return immediately."""
        with self._lock:
            self._pending = state
            if self._scheduled:
                return
            self._scheduled = True
        self._executor.submit(self._drain)

    def _drain(self) -> None:
        while True:
            with self._lock:
                state, self._pending = self._pending, None
                if state is None:
                    self._scheduled = False
                    return
            if not self.store.save(state):
                error = self.store.last_error or OSError("state save failed")
                with self._lock:
                    self._failures.append(error)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every state submitted so far has been written."""
        self._executor.submit(lambda: None).result(timeout=timeout)

    def pop_failures(self) -> list[Exception]:
        with self._lock:
            failures, self._failures = self._failures, []
        return failures

    def close(self) -> None:
        self._executor.shutdown(wait=True)
