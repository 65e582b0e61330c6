"""
Shared test fixtures for the Luna guidance engine.

This module provides common fixtures used across all test modules:
- Environment setup (dev-mode logging)
- FixedClock: a settable, advanceable wall clock
- In-memory key-value store standing in for Redis
- Component fixtures (ProfileStore, InsightLedger, RecoveryWorkflow)
- LunaEngine wired to the clock and the in-memory store

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import pytest

# ---------------------------------------------------------------------------
# Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("LUNA_DEV_MODE", "1")

from src.agents.luna import LunaEngine  # noqa: E402
from src.config.guidance import GuidanceSettings  # noqa: E402
from src.services.insight_ledger import InsightLedger  # noqa: E402
from src.services.persistence import InMemoryKeyValueStore  # noqa: E402
from src.services.profile_store import ProfileStore  # noqa: E402
from src.services.recovery import RecoveryWorkflow  # noqa: E402

# Monday, 10:00 UTC
FIXED_NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


class FixedClock:
    """Callable clock returning a controllable instant."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


# ---------------------------------------------------------------------------
# Clock and storage
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture
def profile_store(clock: FixedClock) -> ProfileStore:
    return ProfileStore(clock=clock)


@pytest.fixture
def ledger(clock: FixedClock) -> InsightLedger:
    return InsightLedger(clock=clock)


@pytest.fixture
def recovery(clock: FixedClock) -> RecoveryWorkflow:
    return RecoveryWorkflow(clock=clock)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> GuidanceSettings:
    return GuidanceSettings()


@pytest.fixture
def engine(
    settings: GuidanceSettings,
    memory_store: InMemoryKeyValueStore,
    clock: FixedClock,
) -> LunaEngine:
    """Engine that has not been init()-ed; no ticker task is running."""
    return LunaEngine(settings=settings, store=memory_store, clock=clock)
