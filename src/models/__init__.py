"""
Models package for the Luna guidance engine.

This package exports the engine's dataclass data model.

Usage:
    from src.models import ProductivityProfile, Insight, Reminder, EngineState
"""

from src.models.guidance import (
    STAGE_ORDER,
    Assessment,
    BehaviorPattern,
    CelebrationStyle,
    CheckFrequency,
    EnergyLevel,
    EnergyReading,
    EngineState,
    GuidanceStyle,
    Insight,
    InsightDraft,
    InsightType,
    MetricTrend,
    PatternImpact,
    Preferences,
    Priority,
    ProductivityProfile,
    RecoveryProgress,
    Reminder,
    ReminderDraft,
    ReminderType,
    Stage,
    UserMetric,
    default_energy_pattern,
    ensure_aware,
    utcnow,
)

__all__ = [
    "STAGE_ORDER",
    "Assessment",
    "BehaviorPattern",
    "CelebrationStyle",
    "CheckFrequency",
    "EnergyLevel",
    "EnergyReading",
    "EngineState",
    "GuidanceStyle",
    "Insight",
    "InsightDraft",
    "InsightType",
    "MetricTrend",
    "PatternImpact",
    "Preferences",
    "Priority",
    "ProductivityProfile",
    "RecoveryProgress",
    "Reminder",
    "ReminderDraft",
    "ReminderType",
    "Stage",
    "UserMetric",
    "default_energy_pattern",
    "ensure_aware",
    "utcnow",
]
