"""
Tests for RecoveryWorkflow (src/services/recovery.py).

Covers:
- Idle -> Active -> Idle transitions
- Unknown levels leave the workflow idle
- Permissive step completion
- Reuse after finish
"""

from __future__ import annotations

import pytest

from src.config.framework import RECOVERY_LEVELS, RecoveryLevel
from src.services.recovery import RecoveryState, RecoveryWorkflow


def test_starts_idle(recovery):
    assert recovery.state == RecoveryState.IDLE
    assert recovery.progress is None


@pytest.mark.parametrize("level", [0, 8, 99, -1])
def test_unknown_level_stays_idle(recovery, level):
    assert recovery.start(level) is None
    assert recovery.state == RecoveryState.IDLE


@pytest.mark.parametrize("entry", RECOVERY_LEVELS, ids=lambda e: f"level-{e.level}")
def test_start_initial_progress(recovery, clock, entry):
    progress = recovery.start(entry.level)

    assert recovery.state == RecoveryState.ACTIVE
    assert progress.level == entry.level
    assert progress.start_time == clock.now
    assert progress.estimated_duration == entry.duration_minutes
    assert progress.completed_steps == []
    assert progress.remaining_steps == [entry.action]
    assert progress.current_step == entry.action


def test_catalog_durations():
    assert [lvl.duration_minutes for lvl in RECOVERY_LEVELS] == [5, 15, 30, 60, 120, 240, 1440]


def test_start_then_finish(recovery):
    recovery.start(1)
    finished = recovery.finish()

    assert finished.level == 1
    assert recovery.state == RecoveryState.IDLE
    assert recovery.progress is None


def test_complete_step_moves_to_completed(recovery):
    progress = recovery.start(1)
    step = progress.current_step

    updated = recovery.complete_step(step)
    assert updated.completed_steps == [step]
    assert updated.remaining_steps == []
    # No remaining steps: current stays on the last step worked on
    assert updated.current_step == step


def test_complete_unknown_step_is_still_recorded(recovery):
    recovery.start(2)
    updated = recovery.complete_step("Made tea")
    assert updated.completed_steps == ["Made tea"]
    assert updated.remaining_steps == ["Rapid processing of captured items"]
    assert updated.current_step == "Rapid processing of captured items"


def test_complete_step_while_idle(recovery):
    assert recovery.complete_step("anything") is None
    assert recovery.state == RecoveryState.IDLE


def test_finish_with_remaining_steps(recovery):
    recovery.start(3)
    finished = recovery.finish()
    assert finished.remaining_steps
    assert recovery.state == RecoveryState.IDLE


def test_finish_while_idle(recovery):
    assert recovery.finish() is None


def test_restart_replaces_session(recovery):
    recovery.start(1)
    recovery.start(4)
    assert recovery.progress.level == 4


def test_reusable_after_finish(recovery):
    recovery.start(1)
    recovery.finish()
    assert recovery.start(2).level == 2


def test_progress_is_a_copy(recovery):
    recovery.start(1)
    recovery.progress.completed_steps.append("sneaky")
    assert recovery.progress.completed_steps == []


def test_custom_catalog(clock):
    workflow = RecoveryWorkflow(
        catalog=[
            RecoveryLevel(
                level=9,
                name="Nap",
                duration_minutes=20,
                when="Tired",
                action="Lie down",
                command="Luna, nap",
                outcome="Rested",
            )
        ],
        clock=clock,
    )
    assert workflow.start(1) is None
    assert workflow.start(9).estimated_duration == 20


def test_restore(recovery, clock):
    progress = RecoveryWorkflow(clock=clock).start(5)
    recovery.restore(progress)
    assert recovery.state == RecoveryState.ACTIVE
    recovery.restore(None)
    assert recovery.state == RecoveryState.IDLE
