"""
Tests for the guidance rules (src/services/guidance/rules.py).

Each rule is exercised against a hand-built RuleContext, covering both the
firing and the quiet case.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from src.models.guidance import (
    EnergyLevel,
    EnergyReading,
    InsightType,
    MetricTrend,
    Preferences,
    Priority,
    ProductivityProfile,
    Reminder,
    ReminderType,
    Stage,
    UserMetric,
)
from src.services.guidance.rules import (
    DEFAULT_RULES,
    RuleContext,
    declining_metrics,
    low_well_being,
    next_review_time,
    overdue_reminders,
    peak_energy_window,
    stage_milestone,
    stale_review,
    system_health,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _ctx(
    profile: ProductivityProfile | None = None,
    preferences: Preferences | None = None,
    now: datetime = NOW,
    in_recovery: bool = False,
    pending: tuple[Reminder, ...] = (),
) -> RuleContext:
    return RuleContext(
        profile=profile or ProductivityProfile(last_assessment=NOW - timedelta(days=1)),
        preferences=preferences or Preferences(),
        now=now,
        in_recovery=in_recovery,
        pending_reminders=pending,
    )


def _reminder(reminder_type: ReminderType, at: datetime) -> Reminder:
    return Reminder(
        id="r1",
        type=reminder_type,
        title="Weekly review",
        description="",
        scheduled_for=at,
        priority=Priority.HIGH,
    )


def test_rule_order():
    assert [r.name for r in DEFAULT_RULES] == [
        "stale_review",
        "low_well_being",
        "system_health",
        "declining_metrics",
        "stage_milestone",
        "overdue_reminders",
        "peak_energy_window",
    ]


def test_fresh_profile_only_fires_stale_review():
    ctx = _ctx(profile=ProductivityProfile())
    fired = [rule.name for rule in DEFAULT_RULES if rule.evaluate(ctx) is not None]
    assert fired == ["stale_review"]


# =============================================================================
# Stale review
# =============================================================================


class TestStaleReview:
    def test_fires_without_any_assessment(self):
        outcome = stale_review(_ctx(profile=ProductivityProfile()))

        insight = outcome.insight
        assert insight.type == InsightType.WARNING
        assert insight.priority == Priority.HIGH
        assert insight.principle == "principle-4"
        assert len(insight.action_items) == 3

    def test_fires_when_older_than_a_week(self):
        profile = ProductivityProfile(last_assessment=NOW - timedelta(days=8))
        assert stale_review(_ctx(profile=profile)) is not None

    def test_quiet_within_a_week(self):
        profile = ProductivityProfile(last_assessment=NOW - timedelta(days=6))
        assert stale_review(_ctx(profile=profile)) is None

    def test_schedules_review_reminder(self):
        outcome = stale_review(_ctx(profile=ProductivityProfile()))
        [reminder] = outcome.reminders
        assert reminder.type == ReminderType.REVIEW
        assert reminder.scheduled_for == NOW.replace(hour=17, minute=0)

    def test_no_duplicate_review_reminder(self):
        pending = (_reminder(ReminderType.REVIEW, NOW + timedelta(hours=2)),)
        outcome = stale_review(_ctx(profile=ProductivityProfile(), pending=pending))
        assert outcome.insight is not None
        assert outcome.reminders == []


class TestNextReviewTime:
    def test_later_today(self):
        assert next_review_time("18:30", NOW) == NOW.replace(hour=18, minute=30)

    def test_already_passed_rolls_to_tomorrow(self):
        assert next_review_time("09:00", NOW) == NOW.replace(hour=9) + timedelta(days=1)

    @pytest.mark.parametrize("bad", ["", "noon", "25:00", "17"])
    def test_malformed_falls_back_to_1700(self, bad):
        assert next_review_time(bad, NOW) == NOW.replace(hour=17)


# =============================================================================
# Scores
# =============================================================================


class TestLowWellBeing:
    def test_fires_below_six_with_score_in_text(self):
        profile = ProductivityProfile(well_being_score=4, last_assessment=NOW)
        insight = low_well_being(_ctx(profile=profile)).insight

        assert insight.type == InsightType.WARNING
        assert insight.priority == Priority.HIGH
        assert "4/10" in insight.description
        assert len(insight.action_items) == 3

    @pytest.mark.parametrize("score", [6, 7, 10])
    def test_quiet_at_six_and_above(self, score):
        profile = ProductivityProfile(well_being_score=score)
        assert low_well_being(_ctx(profile=profile)) is None


class TestSystemHealth:
    def test_fires_at_four_with_matching_level(self):
        profile = ProductivityProfile(system_health_score=4)
        insight = system_health(_ctx(profile=profile)).insight
        assert insight.type == InsightType.GUIDANCE
        assert insight.action_items == ["Start level 1 recovery"]

    def test_worse_health_suggests_heavier_level(self):
        profile = ProductivityProfile(system_health_score=1)
        assert system_health(_ctx(profile=profile)).insight.action_items == [
            "Start level 4 recovery"
        ]

    def test_quiet_while_recovering(self):
        profile = ProductivityProfile(system_health_score=2)
        assert system_health(_ctx(profile=profile, in_recovery=True)) is None

    def test_quiet_when_healthy(self):
        assert system_health(_ctx(profile=ProductivityProfile(system_health_score=5))) is None


# =============================================================================
# Metrics and stages
# =============================================================================


def test_declining_metrics_names_them():
    profile = ProductivityProfile(
        current_metrics=[
            UserMetric("m1", "focus", "Deep work", 1.0, "4h", MetricTrend.DECLINING),
            UserMetric("m2", "focus", "Inbox zero", 1.0, "daily", MetricTrend.IMPROVING),
        ]
    )
    insight = declining_metrics(_ctx(profile=profile)).insight
    assert insight.type == InsightType.SUGGESTION
    assert insight.priority == Priority.MEDIUM
    assert "Deep work" in insight.description
    assert "Inbox zero" not in insight.description


def test_declining_metrics_quiet_without_decline():
    assert declining_metrics(_ctx()) is None


class TestStageMilestone:
    def test_fires_at_end_of_stage(self):
        profile = ProductivityProfile(current_stage=Stage.FOUNDATION, week_in_stage=8)
        insight = stage_milestone(_ctx(profile=profile)).insight
        assert insight.type == InsightType.CELEBRATION
        assert "Foundation" in insight.title

    def test_quiet_mid_stage(self):
        profile = ProductivityProfile(week_in_stage=5)
        assert stage_milestone(_ctx(profile=profile)) is None

    def test_quiet_at_terminal_stage(self):
        profile = ProductivityProfile(current_stage=Stage.SUSTAINABILITY, week_in_stage=20)
        assert stage_milestone(_ctx(profile=profile)) is None


# =============================================================================
# Reminders and energy
# =============================================================================


def test_overdue_reminders_fires():
    pending = (_reminder(ReminderType.BREAK, NOW - timedelta(minutes=1)),)
    insight = overdue_reminders(_ctx(pending=pending)).insight
    assert insight.priority == Priority.LOW
    assert insight.action_items == ["Weekly review"]


def test_overdue_reminders_quiet_for_future():
    pending = (_reminder(ReminderType.BREAK, NOW + timedelta(minutes=1)),)
    assert overdue_reminders(_ctx(pending=pending)) is None


class TestPeakEnergy:
    def _profile(self, level: EnergyLevel, confidence: float) -> ProductivityProfile:
        profile = ProductivityProfile(last_assessment=NOW)
        profile.energy_pattern[NOW.hour] = EnergyReading(NOW.hour, level, confidence)
        return profile

    def test_fires_for_confident_high_hour(self):
        outcome = peak_energy_window(_ctx(profile=self._profile(EnergyLevel.HIGH, 0.6)))
        assert outcome.insight.type == InsightType.GUIDANCE
        assert outcome.insight.action_items == ["Start a 25-minute focus session"]

    def test_quiet_for_default_confidence(self):
        assert peak_energy_window(_ctx(profile=self._profile(EnergyLevel.HIGH, 0.3))) is None

    def test_quiet_for_low_hour(self):
        assert peak_energy_window(_ctx(profile=self._profile(EnergyLevel.LOW, 0.9))) is None
