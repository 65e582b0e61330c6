"""
Guidance Rules for the Luna proactive engine.

Each rule is a pure predicate over a RuleContext snapshot that produces at
most one insight (and optionally one reminder). Rules are independent: the
scheduler runs every rule inside its own error boundary, so a rule that
cannot evaluate simply does not fire.

Rules, in evaluation order:
1. stale_review        - no assessment yet, or the last one is over a week old
2. low_well_being      - well-being score below 6
3. system_health       - health degraded and no recovery session running
4. declining_metrics   - at least one metric trending down
5. stage_milestone     - all weeks of a non-terminal stage completed
6. overdue_reminders   - pending reminders whose time has passed
7. peak_energy_window  - the current hour is a confident high-energy hour
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from src.config.framework import (
    PRINCIPLE_ENGAGE,
    PRINCIPLE_ORGANIZE,
    PRINCIPLE_REFLECT,
    STAGE_DEFINITIONS,
    recovery_level_for_health,
    total_weeks_for,
)
from src.config.guidance import (
    ENERGY_RECOMMENDATION_CONFIDENCE,
    LOW_SYSTEM_HEALTH_THRESHOLD,
    LOW_WELL_BEING_THRESHOLD,
    REVIEW_OVERDUE_AFTER,
)
from src.models.guidance import (
    STAGE_ORDER,
    EnergyLevel,
    InsightDraft,
    InsightType,
    MetricTrend,
    Preferences,
    Priority,
    ProductivityProfile,
    Reminder,
    ReminderDraft,
    ReminderType,
)

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RuleContext:
    """Read-only view of engine state handed to every rule."""

    profile: ProductivityProfile
    preferences: Preferences
    now: datetime
    in_recovery: bool = False
    pending_reminders: tuple[Reminder, ...] = ()

    def has_pending(self, reminder_type: ReminderType) -> bool:
        return any(r.type == reminder_type for r in self.pending_reminders)


@dataclass
class RuleOutcome:
    """What a fired rule contributes to the ledger."""

    insight: InsightDraft | None = None
    reminders: list[ReminderDraft] = field(default_factory=list)


@dataclass(frozen=True)
class GuidanceRule:
    name: str
    evaluate: Callable[[RuleContext], RuleOutcome | None]


# =============================================================================
# Helpers
# =============================================================================


def next_review_time(preferred: str, now: datetime) -> datetime:
    """Next occurrence of an "HH:MM" review time strictly after ``now``.

    Malformed preferences fall back to 17:00.
    """
    try:
        hours, minutes = (int(part) for part in preferred.split(":", 1))
        at = time(hour=hours, minute=minutes)
    except (ValueError, AttributeError):
        at = time(hour=17)

    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


# =============================================================================
# Rules
# =============================================================================


def stale_review(ctx: RuleContext) -> RuleOutcome | None:
    last = ctx.profile.last_assessment
    if last is not None and ctx.now - last <= REVIEW_OVERDUE_AFTER:
        return None

    outcome = RuleOutcome(
        insight=InsightDraft(
            type=InsightType.WARNING,
            principle=PRINCIPLE_REFLECT,
            title="Weekly Review Overdue",
            description=(
                "It's been over a week since your last review. "
                "Regular reflection maintains system health."
            ),
            priority=Priority.HIGH,
            action_items=[
                "Schedule 30 minutes for a comprehensive review",
                "Process any accumulated tasks",
                "Check goal alignment",
            ],
        )
    )
    if not ctx.has_pending(ReminderType.REVIEW):
        outcome.reminders.append(
            ReminderDraft(
                type=ReminderType.REVIEW,
                title="Weekly review",
                description="Block 30 minutes to review projects, goals and well-being.",
                scheduled_for=next_review_time(ctx.preferences.preferred_review_time, ctx.now),
                priority=Priority.HIGH,
            )
        )
    return outcome


def low_well_being(ctx: RuleContext) -> RuleOutcome | None:
    score = ctx.profile.well_being_score
    if score >= LOW_WELL_BEING_THRESHOLD:
        return None
    return RuleOutcome(
        insight=InsightDraft(
            type=InsightType.WARNING,
            principle=PRINCIPLE_REFLECT,
            title="Well-being Score Needs Attention",
            description=(
                f"Your well-being score is {score}/10. "
                "Let's focus on sustainable productivity."
            ),
            priority=Priority.HIGH,
            action_items=[
                "Take a 10-minute break",
                "Check if you're overcommitted",
                "Consider rescheduling non-critical tasks",
            ],
        )
    )


def system_health(ctx: RuleContext) -> RuleOutcome | None:
    score = ctx.profile.system_health_score
    if ctx.in_recovery or score > LOW_SYSTEM_HEALTH_THRESHOLD:
        return None
    level = recovery_level_for_health(score)
    return RuleOutcome(
        insight=InsightDraft(
            type=InsightType.GUIDANCE,
            principle=PRINCIPLE_REFLECT,
            title="Your System Could Use a Reset",
            description=(
                f"System health is {score}/10. "
                f"A level {level} recovery should get things back on track."
            ),
            priority=Priority.HIGH,
            action_items=[f"Start level {level} recovery"],
        )
    )


def declining_metrics(ctx: RuleContext) -> RuleOutcome | None:
    declining = [
        m.name or m.metric_id
        for m in ctx.profile.current_metrics
        if m.trend == MetricTrend.DECLINING
    ]
    if not declining:
        return None
    return RuleOutcome(
        insight=InsightDraft(
            type=InsightType.SUGGESTION,
            principle=PRINCIPLE_ENGAGE,
            title="Some Metrics Are Slipping",
            description="Trending down: " + ", ".join(declining) + ".",
            priority=Priority.MEDIUM,
            action_items=[f"Look at what changed for {name}" for name in declining],
        )
    )


def stage_milestone(ctx: RuleContext) -> RuleOutcome | None:
    stage = ctx.profile.current_stage
    if stage == STAGE_ORDER[-1]:
        return None
    if ctx.profile.week_in_stage < total_weeks_for(stage):
        return None
    definition = STAGE_DEFINITIONS.get(stage)
    name = definition.name if definition else stage.value.title()
    return RuleOutcome(
        insight=InsightDraft(
            type=InsightType.CELEBRATION,
            principle=PRINCIPLE_ENGAGE,
            title=f"{name} Stage Complete",
            description=(
                f"You've put in every week of the {name} stage. "
                "Run an assessment and move on when you feel ready."
            ),
            priority=Priority.MEDIUM,
            action_items=["Run a stage assessment", "Advance to the next stage"],
        )
    )


def overdue_reminders(ctx: RuleContext) -> RuleOutcome | None:
    overdue = [r for r in ctx.pending_reminders if r.scheduled_for < ctx.now]
    if not overdue:
        return None
    return RuleOutcome(
        insight=InsightDraft(
            type=InsightType.SUGGESTION,
            principle=PRINCIPLE_REFLECT,
            title="Reminders Waiting",
            description=f"{len(overdue)} reminder(s) are past due.",
            priority=Priority.LOW,
            action_items=[r.title for r in overdue],
        )
    )


def peak_energy_window(ctx: RuleContext) -> RuleOutcome | None:
    entry = ctx.profile.energy_at(ctx.now.hour)
    if entry is None or entry.level != EnergyLevel.HIGH:
        return None
    if entry.confidence <= ENERGY_RECOMMENDATION_CONFIDENCE:
        return None
    minutes = ctx.preferences.focus_session_length
    return RuleOutcome(
        insight=InsightDraft(
            type=InsightType.GUIDANCE,
            principle=PRINCIPLE_ORGANIZE,
            title="Peak Energy Window",
            description=(
                "This is usually one of your high-energy hours. "
                "Good time for your hardest task."
            ),
            priority=Priority.LOW,
            action_items=[f"Start a {minutes}-minute focus session"],
        )
    )


DEFAULT_RULES: tuple[GuidanceRule, ...] = (
    GuidanceRule("stale_review", stale_review),
    GuidanceRule("low_well_being", low_well_being),
    GuidanceRule("system_health", system_health),
    GuidanceRule("declining_metrics", declining_metrics),
    GuidanceRule("stage_milestone", stage_milestone),
    GuidanceRule("overdue_reminders", overdue_reminders),
    GuidanceRule("peak_energy_window", peak_energy_window),
)
