"""
Guidance Engine Configuration for the Luna productivity coach.

Every cap, threshold and cadence used by the engine lives here as a named
constant. GuidanceSettings bundles the subset a host application may want
to override and is injected into LunaEngine at construction time.

Environment variables (read only by GuidanceSettings.from_env):
    LUNA_PROACTIVE_INTERVAL_MINUTES  Cadence of the proactive check (default 30)
    LUNA_INSIGHT_CAP                 Size of the active insight window (default 10)
    LUNA_STATE_KEY                   Key of the persisted engine record
    LUNA_PROACTIVE_DEFAULT           "1"/"0": proactive mode for fresh users
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from src.lib.exceptions import ConfigurationError

# =============================================================================
# Bounded history caps
# =============================================================================

INSIGHT_CAP = 10
ASSESSMENT_HISTORY_CAP = 5
BEHAVIOR_PATTERN_CAP = 20
PERSISTED_BEHAVIOR_PATTERN_WINDOW = 10

# =============================================================================
# Profile tuning
# =============================================================================

WELL_BEING_MIN = 1
WELL_BEING_MAX = 10
DEFAULT_WELL_BEING = 7
DEFAULT_SYSTEM_HEALTH = 5

ENERGY_CONFIDENCE_STEP = 0.1
ENERGY_INITIAL_CONFIDENCE = 0.3
# An hour's level is only recommended once it has been observed a few times
ENERGY_RECOMMENDATION_CONFIDENCE = 0.5

# =============================================================================
# Proactive guidance
# =============================================================================

PROACTIVE_CHECK_INTERVAL = timedelta(minutes=30)
REVIEW_OVERDUE_AFTER = timedelta(days=7)
LOW_WELL_BEING_THRESHOLD = 6
LOW_SYSTEM_HEALTH_THRESHOLD = 4
# Scores at or above this count as strengths in an assessment
HEALTHY_SCORE = 7

# =============================================================================
# Persistence
# =============================================================================

STATE_KEY = "luna:framework:state"
# Key used by the browser client before the versioned schema existed
LEGACY_STATE_KEY = "luna-framework-data"
SCHEMA_VERSION = 1


@dataclass
class GuidanceSettings:
    """Overridable engine settings.

    Attributes:
        proactive_interval: Cadence of the periodic proactive check
        insight_cap: Maximum number of active insights retained
        state_key: Key of the persisted engine record
        proactive_by_default: Whether proactive mode starts enabled for new users
    """

    proactive_interval: timedelta = PROACTIVE_CHECK_INTERVAL
    insight_cap: int = INSIGHT_CAP
    state_key: str = STATE_KEY
    proactive_by_default: bool = True

    @classmethod
    def from_env(cls) -> GuidanceSettings:
        """Build settings from LUNA_* environment variables.

        Raises:
            ConfigurationError: If a numeric variable is malformed or not positive
        """
        interval_minutes = _positive_int_env(
            "LUNA_PROACTIVE_INTERVAL_MINUTES",
            int(PROACTIVE_CHECK_INTERVAL.total_seconds() // 60),
        )
        insight_cap = _positive_int_env("LUNA_INSIGHT_CAP", INSIGHT_CAP)
        state_key = os.environ.get("LUNA_STATE_KEY", "").strip() or STATE_KEY
        proactive_default = os.environ.get("LUNA_PROACTIVE_DEFAULT", "1") != "0"

        return cls(
            proactive_interval=timedelta(minutes=interval_minutes),
            insight_cap=insight_cap,
            state_key=state_key,
            proactive_by_default=proactive_default,
        )


def _positive_int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value
