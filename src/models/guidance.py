"""
Guidance Engine Data Model for the Luna productivity coach.

Plain dataclasses describing everything the engine tracks about a user:
- ProductivityProfile: stage, metrics, well-being, system health, energy table
- Insight / Reminder: user-facing output of the guidance loop
- Assessment: immutable progress snapshot
- RecoveryProgress: state of an active recovery session
- Preferences / BehaviorPattern: learned configuration
- EngineState: the aggregate owned by LunaEngine

Enumerations are StrEnums so they serialize to their wire strings as-is.
Decoding from the persisted record lives in src.services.persistence.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from src.config.guidance import (
    ASSESSMENT_HISTORY_CAP,
    BEHAVIOR_PATTERN_CAP,
    DEFAULT_SYSTEM_HEALTH,
    DEFAULT_WELL_BEING,
    ENERGY_INITIAL_CONFIDENCE,
    INSIGHT_CAP,
)

# =============================================================================
# Enums
# =============================================================================


class Stage(StrEnum):
    """Productivity maturity stages, in progression order."""

    FOUNDATION = "foundation"
    OPTIMIZATION = "optimization"
    MASTERY = "mastery"
    SUSTAINABILITY = "sustainability"


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.FOUNDATION,
    Stage.OPTIMIZATION,
    Stage.MASTERY,
    Stage.SUSTAINABILITY,
)


class EnergyLevel(StrEnum):
    """Qualitative energy level for an hour of the day."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MetricTrend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class InsightType(StrEnum):
    SUGGESTION = "suggestion"
    WARNING = "warning"
    CELEBRATION = "celebration"
    GUIDANCE = "guidance"


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReminderType(StrEnum):
    REVIEW = "review"
    BREAK = "break"
    REFLECTION = "reflection"
    GOAL_CHECK = "goal-check"
    WELL_BEING = "well-being"


class PatternImpact(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class CheckFrequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


class GuidanceStyle(StrEnum):
    GENTLE = "gentle"
    DIRECT = "direct"
    MOTIVATIONAL = "motivational"


class CelebrationStyle(StrEnum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    ENTHUSIASTIC = "enthusiastic"


def utcnow() -> datetime:
    """Timezone-aware current time; the default engine clock."""
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# =============================================================================
# Profile
# =============================================================================


@dataclass
class UserMetric:
    """A named productivity metric tracked against a target."""

    metric_id: str
    category: str
    name: str
    current_value: float
    target: str
    trend: MetricTrend = MetricTrend.STABLE
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "metric_id": self.metric_id,
            "category": self.category,
            "name": self.name,
            "current_value": self.current_value,
            "target": self.target,
            "trend": self.trend.value,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class EnergyReading:
    """Observed energy level for one hour of the day."""

    hour: int  # 0-23
    level: EnergyLevel
    confidence: float  # 0-1, grows with repeated observation

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"hour": self.hour, "level": self.level.value, "confidence": self.confidence}


def default_energy_level(hour: int) -> EnergyLevel:
    """Prior for an hour nobody has observed yet: office hours high, night low."""
    if 9 <= hour <= 17:
        return EnergyLevel.HIGH
    if 6 <= hour <= 22:
        return EnergyLevel.MEDIUM
    return EnergyLevel.LOW


def default_energy_pattern() -> list[EnergyReading]:
    """Build the 24-entry energy table with low initial confidence."""
    return [
        EnergyReading(
            hour=hour,
            level=default_energy_level(hour),
            confidence=ENERGY_INITIAL_CONFIDENCE,
        )
        for hour in range(24)
    ]


@dataclass
class ProductivityProfile:
    """The user's productivity profile.

    Invariants:
        - energy_pattern has exactly one entry per hour 0-23, ordered by hour
        - well_being_score and system_health_score stay within 1-10
        - week_in_stage >= 1
    """

    current_stage: Stage = Stage.FOUNDATION
    week_in_stage: int = 1
    completed_principles: set[str] = field(default_factory=set)
    current_metrics: list[UserMetric] = field(default_factory=list)
    last_assessment: datetime | None = None
    well_being_score: int = DEFAULT_WELL_BEING
    system_health_score: int = DEFAULT_SYSTEM_HEALTH
    energy_pattern: list[EnergyReading] = field(default_factory=default_energy_pattern)

    def metric(self, metric_id: str) -> UserMetric | None:
        """Look up a metric by id."""
        for metric in self.current_metrics:
            if metric.metric_id == metric_id:
                return metric
        return None

    def energy_at(self, hour: int) -> EnergyReading | None:
        """Look up the energy entry for an hour."""
        for entry in self.energy_pattern:
            if entry.hour == hour:
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "current_stage": self.current_stage.value,
            "week_in_stage": self.week_in_stage,
            "completed_principles": sorted(self.completed_principles),
            "current_metrics": [m.to_dict() for m in self.current_metrics],
            "last_assessment": (
                self.last_assessment.isoformat() if self.last_assessment else None
            ),
            "well_being_score": self.well_being_score,
            "system_health_score": self.system_health_score,
            "energy_pattern": [e.to_dict() for e in self.energy_pattern],
        }


# =============================================================================
# Insights, reminders, assessments
# =============================================================================


@dataclass
class InsightDraft:
    """An insight before the ledger assigns it an id and timestamp."""

    type: InsightType
    principle: str
    title: str
    description: str
    priority: Priority = Priority.MEDIUM
    action_items: list[str] = field(default_factory=list)


@dataclass
class Insight:
    """A generated, user-facing observation or suggestion."""

    id: str
    type: InsightType
    principle: str
    title: str
    description: str
    priority: Priority
    timestamp: datetime
    action_items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "principle": self.principle,
            "title": self.title,
            "description": self.description,
            "action_items": list(self.action_items),
            "priority": self.priority.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ReminderDraft:
    """A reminder before the ledger assigns it an id."""

    type: ReminderType
    title: str
    description: str
    scheduled_for: datetime
    priority: Priority = Priority.MEDIUM


@dataclass
class Reminder:
    """A scheduled prompt. Never deleted, only flagged completed."""

    id: str
    type: ReminderType
    title: str
    description: str
    scheduled_for: datetime
    priority: Priority
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "scheduled_for": self.scheduled_for.isoformat(),
            "completed": self.completed,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class Assessment:
    """Immutable snapshot of the profile at assessment time."""

    date: datetime
    stage: Stage
    completion_percentage: float
    strengths: tuple[str, ...] = ()
    improvements: tuple[str, ...] = ()
    next_steps: tuple[str, ...] = ()
    metrics: tuple[UserMetric, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "date": self.date.isoformat(),
            "stage": self.stage.value,
            "completion_percentage": self.completion_percentage,
            "strengths": list(self.strengths),
            "improvements": list(self.improvements),
            "next_steps": list(self.next_steps),
            "metrics": [m.to_dict() for m in self.metrics],
        }


# =============================================================================
# Recovery
# =============================================================================


@dataclass
class RecoveryProgress:
    """Progress through an active recovery session."""

    level: int
    start_time: datetime
    estimated_duration: int  # minutes
    completed_steps: list[str] = field(default_factory=list)
    remaining_steps: list[str] = field(default_factory=list)
    current_step: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "level": self.level,
            "start_time": self.start_time.isoformat(),
            "estimated_duration": self.estimated_duration,
            "completed_steps": list(self.completed_steps),
            "remaining_steps": list(self.remaining_steps),
            "current_step": self.current_step,
        }


# =============================================================================
# Preferences and learned patterns
# =============================================================================


@dataclass
class Preferences:
    """User preferences for how Luna guides them."""

    preferred_review_time: str = "17:00"  # HH:MM, local to the user
    preferred_break_interval: int = 90  # minutes
    focus_session_length: int = 25  # minutes
    well_being_check_frequency: CheckFrequency = CheckFrequency.DAILY
    guidance_style: GuidanceStyle = GuidanceStyle.GENTLE
    celebration_style: CelebrationStyle = CelebrationStyle.MODERATE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "preferred_review_time": self.preferred_review_time,
            "preferred_break_interval": self.preferred_break_interval,
            "focus_session_length": self.focus_session_length,
            "well_being_check_frequency": self.well_being_check_frequency.value,
            "guidance_style": self.guidance_style.value,
            "celebration_style": self.celebration_style.value,
        }


@dataclass
class BehaviorPattern:
    """An observed behavior pattern and its impact."""

    pattern: str
    frequency: int
    impact: PatternImpact
    confidence: float  # 0-1
    suggested_action: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "pattern": self.pattern,
            "frequency": self.frequency,
            "impact": self.impact.value,
            "suggested_action": self.suggested_action,
            "confidence": self.confidence,
        }


# =============================================================================
# Aggregate
# =============================================================================


@dataclass
class EngineState:
    """Everything LunaEngine persists for one user.

    Bounded histories are deques with maxlen; appendleft drops the oldest
    entry once the cap is reached.
    """

    profile: ProductivityProfile = field(default_factory=ProductivityProfile)
    insights: deque[Insight] = field(default_factory=lambda: deque(maxlen=INSIGHT_CAP))
    reminders: list[Reminder] = field(default_factory=list)
    assessments: deque[Assessment] = field(
        default_factory=lambda: deque(maxlen=ASSESSMENT_HISTORY_CAP)
    )
    recovery_progress: RecoveryProgress | None = None
    is_proactive_mode: bool = True
    last_proactive_check: datetime | None = None
    preferences: Preferences = field(default_factory=Preferences)
    behavior_patterns: deque[BehaviorPattern] = field(
        default_factory=lambda: deque(maxlen=BEHAVIOR_PATTERN_CAP)
    )

    @property
    def is_in_recovery_mode(self) -> bool:
        return self.recovery_progress is not None

    @property
    def current_recovery_level(self) -> int | None:
        return self.recovery_progress.level if self.recovery_progress else None
