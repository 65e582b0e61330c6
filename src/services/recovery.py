"""
Recovery Workflow for the Luna guidance engine.

A small state machine for the multi-step recovery process started when the
user's system health degrades:

    Idle --start(level)--> Active(level, progress)
    Active --complete_step(step)--> Active
    Active --finish()--> Idle

Transitions are deliberately permissive:
- start() with a level missing from the catalog is a silent no-op
- complete_step() records steps that were never in the remaining list
- finish() is allowed while steps remain

The workflow is reusable: it can be started again once back in Idle.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import StrEnum

from src.config.framework import RECOVERY_LEVELS, RecoveryLevel
from src.models.guidance import RecoveryProgress, utcnow

logger = logging.getLogger(__name__)


class RecoveryState(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"


class RecoveryWorkflow:
    """Recovery state machine backed by a static level catalog.

    Args:
        catalog: Recovery levels that may be started (defaults to RECOVERY_LEVELS)
        clock: Source of the session start time
    """

    def __init__(
        self,
        catalog: Iterable[RecoveryLevel] = RECOVERY_LEVELS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog: dict[int, RecoveryLevel] = {lvl.level: lvl for lvl in catalog}
        self._clock = clock
        self._progress: RecoveryProgress | None = None

    @property
    def state(self) -> RecoveryState:
        return RecoveryState.ACTIVE if self._progress is not None else RecoveryState.IDLE

    @property
    def is_active(self) -> bool:
        return self._progress is not None

    @property
    def progress(self) -> RecoveryProgress | None:
        """Deep copy of the active session's progress, or None when idle."""
        return copy.deepcopy(self._progress)

    def restore(self, progress: RecoveryProgress | None) -> None:
        """Resume a persisted session (or reset to Idle with None)."""
        self._progress = copy.deepcopy(progress)

    def level(self, level: int) -> RecoveryLevel | None:
        return self._catalog.get(level)

    def start(self, level: int) -> RecoveryProgress | None:
        """Enter Active for a catalog level.

        Starting while already active replaces the running session.

        Returns:
            The new progress, or None if the level is not in the catalog
        """
        entry = self._catalog.get(level)
        if entry is None:
            logger.warning("Ignoring start of unknown recovery level %s", level)
            return None

        if self._progress is not None:
            logger.info(
                "Replacing active recovery level %s with level %s",
                self._progress.level,
                level,
            )

        self._progress = RecoveryProgress(
            level=entry.level,
            start_time=self._clock(),
            estimated_duration=entry.duration_minutes,
            completed_steps=[],
            remaining_steps=[entry.action],
            current_step=entry.action,
        )
        return self.progress

    def complete_step(self, step: str) -> RecoveryProgress | None:
        """Move a step from remaining to completed.

        Steps not in the remaining list are still recorded as completed.
        The current step advances to the next remaining step; once none
        remain it keeps pointing at the last step worked on.

        Returns:
            Updated progress, or None when idle
        """
        if self._progress is None:
            logger.debug("complete_step(%r) ignored while idle", step)
            return None

        progress = self._progress
        if step not in progress.remaining_steps:
            logger.info("Recording recovery step %r that was not pending", step)

        remaining = [s for s in progress.remaining_steps if s != step]
        self._progress = RecoveryProgress(
            level=progress.level,
            start_time=progress.start_time,
            estimated_duration=progress.estimated_duration,
            completed_steps=[*progress.completed_steps, step],
            remaining_steps=remaining,
            current_step=remaining[0] if remaining else step,
        )
        return self.progress

    def finish(self) -> RecoveryProgress | None:
        """Return to Idle regardless of remaining steps.

        Returns:
            The progress of the session that was finished, if any
        """
        finished = self._progress
        self._progress = None
        if finished is not None and finished.remaining_steps:
            logger.info(
                "Recovery level %s finished with %d step(s) remaining",
                finished.level,
                len(finished.remaining_steps),
            )
        return finished
