"""
Tests for LunaEngine (src/agents/luna/engine.py).

Covers the facade end to end against an in-memory store and a fixed clock:
- Profile operations and write-through persistence
- Proactive guidance (forced, debounced, ticker lifecycle)
- Assessments
- Recovery workflow
- Preferences and behavior patterns
- Command suggestions and interpretation
- Restoring state across engine instances
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta

import pytest

from src.agents.luna import LunaEngine, derive_assessment
from src.config.guidance import STATE_KEY, GuidanceSettings
from src.models.guidance import (
    BehaviorPattern,
    CheckFrequency,
    EnergyLevel,
    GuidanceStyle,
    InsightDraft,
    InsightType,
    MetricTrend,
    PatternImpact,
    Priority,
    ProductivityProfile,
    ReminderDraft,
    ReminderType,
    Stage,
    UserMetric,
)

TICKER_NAME = "luna-proactive-ticker"
NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


class BrokenStore:
    def get_sync(self, key):
        raise ConnectionError("store offline")

    def set_sync(self, key, value, ttl=None):
        raise ConnectionError("store offline")


class EchoInterpreter:
    async def interpret(self, text, context=None):
        return [f"echo: {text}"]


def _saved(memory_store) -> dict:
    return json.loads(memory_store.get_sync(STATE_KEY))


def _ticker_tasks() -> list[asyncio.Task]:
    return [t for t in asyncio.all_tasks() if t.get_name() == TICKER_NAME and not t.done()]


# =============================================================================
# Proactive guidance
# =============================================================================


class TestProactiveGuidance:
    def test_low_well_being_without_assessment_raises_two_warnings(self, engine):
        engine.record_well_being(4)
        engine.force_evaluation()

        urgent = [
            i for i in engine.insights
            if i.type == InsightType.WARNING and i.priority == Priority.HIGH
        ]
        assert len(urgent) >= 2
        assert any("4/10" in i.description for i in urgent)

    def test_stale_review_schedules_one_review_reminder(self, engine, clock):
        engine.force_evaluation()
        clock.advance(timedelta(hours=1))
        engine.force_evaluation()

        reviews = [r for r in engine.pending_reminders if r.type == ReminderType.REVIEW]
        assert len(reviews) == 1
        assert reviews[0].scheduled_for == clock.now.replace(hour=17, minute=0)

    def test_check_is_debounced(self, engine, clock):
        assert engine.check_for_proactive_guidance() is not None
        clock.advance(timedelta(minutes=10))
        assert engine.check_for_proactive_guidance() is None
        clock.advance(timedelta(minutes=20))
        assert engine.check_for_proactive_guidance() is not None

    def test_check_stamps_and_persists_last_check(self, engine, memory_store, clock):
        engine.check_for_proactive_guidance()
        assert engine.last_proactive_check == clock.now
        assert _saved(memory_store)["last_proactive_check"] == clock.now.isoformat()

    def test_disabled_mode_skips_check_but_not_force(self, engine):
        engine.disable_proactive_mode()
        assert engine.check_for_proactive_guidance() is None
        assert engine.force_evaluation().fired_rules == ["stale_review"]

    def test_recovery_silences_system_health_rule(self, engine):
        engine.record_system_health(2)
        assert "system_health" in engine.force_evaluation().fired_rules

        engine.start_recovery(3)
        assert "system_health" not in engine.force_evaluation().fired_rules

    def test_insight_window_capped(self, engine, clock):
        for _ in range(8):
            engine.record_well_being(3)
            engine.force_evaluation()
            clock.advance(timedelta(minutes=1))
        assert len(engine.insights) == 10

    def test_insight_cap_from_settings(self, memory_store, clock):
        engine = LunaEngine(
            settings=GuidanceSettings(insight_cap=3), store=memory_store, clock=clock
        )
        for _ in range(5):
            engine.force_evaluation()
        assert len(engine.insights) == 3


# =============================================================================
# Ticker lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_starts_single_ticker(self, engine):
        assert await engine.init() is False
        engine.enable_proactive_mode()

        assert engine.scheduler.ticker_running
        assert len(_ticker_tasks()) == 1
        await engine.teardown()
        assert _ticker_tasks() == []

    @pytest.mark.asyncio
    async def test_disable_cancels_ticker(self, engine):
        await engine.init()
        engine.disable_proactive_mode()
        await asyncio.sleep(0)

        assert not engine.scheduler.ticker_running
        assert _ticker_tasks() == []
        await engine.teardown()

    @pytest.mark.asyncio
    async def test_no_ticker_before_init(self, engine):
        engine.enable_proactive_mode()
        assert not engine.scheduler.ticker_running

    @pytest.mark.asyncio
    async def test_restored_disabled_mode_has_no_ticker(self, memory_store, clock):
        first = LunaEngine(store=memory_store, clock=clock)
        first.disable_proactive_mode()

        second = LunaEngine(store=memory_store, clock=clock)
        assert await second.init() is True
        assert second.is_proactive_mode is False
        assert not second.scheduler.ticker_running
        await second.teardown()

    @pytest.mark.asyncio
    async def test_ticker_runs_proactive_check(self, memory_store, clock):
        engine = LunaEngine(
            settings=GuidanceSettings(proactive_interval=timedelta(milliseconds=5)),
            store=memory_store,
            clock=clock,
        )
        await engine.init()
        await asyncio.sleep(0.05)
        await engine.teardown()

        assert engine.last_proactive_check == clock.now
        assert any(i.title == "Weekly Review Overdue" for i in engine.insights)

    @pytest.mark.asyncio
    async def test_teardown_saves_snapshot(self, engine, memory_store):
        await engine.init()
        await engine.teardown()
        assert _saved(memory_store)["schema_version"] == 1

    @pytest.mark.asyncio
    async def test_init_twice_is_noop(self, engine):
        await engine.init()
        assert await engine.init() is False
        assert len(_ticker_tasks()) == 1
        await engine.teardown()


# =============================================================================
# Profile
# =============================================================================


class TestProfile:
    def test_every_mutation_writes_through(self, engine, memory_store):
        engine.record_well_being(15)
        assert _saved(memory_store)["profile"]["well_being_score"] == 10

        engine.advance_stage()
        assert _saved(memory_store)["profile"]["current_stage"] == "optimization"

        engine.advance_week()
        assert _saved(memory_store)["profile"]["week_in_stage"] == 2

        engine.complete_principle("principle-2")
        assert _saved(memory_store)["profile"]["completed_principles"] == ["principle-2"]

    def test_update_profile_ignores_unknown_fields(self, engine):
        profile = engine.update_profile(week_in_stage=3, mood="sunny")
        assert profile.week_in_stage == 3

    def test_record_metric(self, engine, clock):
        engine.record_metric(UserMetric("m1", "focus", "Deep work", 2.0, "4h"))
        engine.record_metric(UserMetric("m1", "focus", "Deep work", 3.0, "4h"))

        [metric] = engine.profile.current_metrics
        assert metric.current_value == 3.0
        assert metric.last_updated == clock.now

    def test_energy_recommendation(self, engine):
        for _ in range(3):
            engine.record_energy(21, EnergyLevel.HIGH)
        assert engine.get_energy_recommendation(21) == EnergyLevel.HIGH
        assert engine.get_energy_recommendation(3) is None

    def test_out_of_range_energy_is_ignored(self, engine, memory_store):
        assert engine.record_energy(24, EnergyLevel.HIGH) is None
        assert memory_store.get_sync(STATE_KEY) is None

    def test_profile_is_a_copy(self, engine):
        engine.profile.energy_pattern.clear()
        assert len(engine.profile.energy_pattern) == 24

    def test_stage_string_keeps_write_through_working(self, engine, memory_store):
        engine.update_profile(current_stage="mastery")
        engine.record_well_being(3)

        saved = _saved(memory_store)["profile"]
        assert saved["current_stage"] == "mastery"
        assert saved["well_being_score"] == 3

    def test_unusable_input_never_raises(self, engine, memory_store):
        engine.update_profile(current_stage="bogus", well_being_score=None, week_in_stage="x")
        assert engine.record_well_being(float("nan")) == 7
        assert engine.advance_stage() == Stage.OPTIMIZATION
        assert _saved(memory_store)["profile"]["current_stage"] == "optimization"

    def test_naive_last_assessment_still_ages(self, engine):
        engine.update_profile(last_assessment=datetime(2020, 1, 1))
        result = engine.force_evaluation()

        assert "stale_review" in result.fired_rules
        assert result.failed_rules == []

    def test_naive_check_time_is_accepted(self, engine):
        result = engine.check_for_proactive_guidance(datetime(2030, 1, 1))
        assert result is not None
        assert engine.last_proactive_check == datetime(2030, 1, 1, tzinfo=UTC)
        assert engine.check_for_proactive_guidance(datetime(2030, 1, 1, 0, 10)) is None


# =============================================================================
# Assessments
# =============================================================================


class TestAssessment:
    def test_records_and_stamps_last_assessment(self, engine, clock):
        engine.update_profile(week_in_stage=2)
        assessment = engine.trigger_assessment()

        assert assessment.date == clock.now
        assert assessment.stage == Stage.FOUNDATION
        assert assessment.completion_percentage == 25.0
        assert engine.profile.last_assessment == clock.now
        assert engine.assessments == [assessment]

    def test_assessment_clears_stale_review(self, engine):
        engine.trigger_assessment()
        assert "stale_review" not in engine.force_evaluation().fired_rules

    def test_history_capped_at_five(self, engine, clock):
        for _ in range(7):
            engine.trigger_assessment()
            clock.advance(timedelta(days=1))
        assessments = engine.assessments
        assert len(assessments) == 5
        assert assessments[0].date > assessments[-1].date

    def test_completion_capped_at_100(self):
        profile = ProductivityProfile(week_in_stage=12)
        assert derive_assessment(profile, NOW).completion_percentage == 100.0

    def test_derived_findings(self):
        profile = ProductivityProfile(
            week_in_stage=1,
            well_being_score=5,
            system_health_score=8,
            current_metrics=[
                UserMetric("a", "focus", "Deep work", 1, "", MetricTrend.IMPROVING),
                UserMetric("b", "inbox", "Inbox", 1, "", MetricTrend.DECLINING),
            ],
        )
        assessment = derive_assessment(profile, NOW)

        assert "Deep work is improving" in assessment.strengths
        assert any("System health" in s for s in assessment.strengths)
        assert "Inbox is declining" in assessment.improvements
        assert any("Well-being" in s for s in assessment.improvements)
        assert assessment.next_steps[0] == "Practice daily capture with reminders"

    def test_next_steps_at_end_of_stage(self):
        profile = ProductivityProfile(current_stage=Stage.MASTERY, week_in_stage=8)
        assert derive_assessment(profile, NOW).next_steps == (
            "Advance to the Sustainability stage when you feel ready",
        )


# =============================================================================
# Insights and reminders
# =============================================================================


class TestInsightsAndReminders:
    def test_add_and_dismiss(self, engine, memory_store):
        insight_id = engine.add_insight(
            InsightDraft(InsightType.CELEBRATION, "principle-5", "Nice", "Streak!")
        )
        assert _saved(memory_store)["ledger"]["insights"][0]["id"] == insight_id

        assert engine.dismiss_insight(insight_id) is True
        assert engine.insights == []
        assert engine.dismiss_insight(insight_id) is False

    def test_schedule_and_complete_reminder(self, engine, clock):
        reminder_id = engine.schedule_reminder(
            ReminderDraft(ReminderType.BREAK, "Stretch", "", clock.now + timedelta(minutes=90))
        )
        assert engine.complete_reminder(reminder_id) is True
        assert engine.complete_reminder(reminder_id) is False
        assert engine.pending_reminders == []
        assert len(engine.reminders) == 1


# =============================================================================
# Recovery
# =============================================================================


class TestRecovery:
    def test_unknown_level_stays_idle(self, engine):
        assert engine.start_recovery(99) is None
        assert engine.is_in_recovery_mode is False
        assert engine.recovery_progress is None

    def test_start_complete_finish(self, engine, memory_store):
        progress = engine.start_recovery(1)
        assert engine.is_in_recovery_mode
        assert _saved(memory_store)["recovery_progress"]["level"] == 1

        engine.complete_recovery_step(progress.current_step)
        assert engine.recovery_progress.remaining_steps == []

        finished = engine.finish_recovery()
        assert finished.completed_steps == [progress.current_step]
        assert engine.is_in_recovery_mode is False
        assert _saved(memory_store)["recovery_progress"] is None

    def test_complete_step_while_idle(self, engine):
        assert engine.complete_recovery_step("anything") is None


# =============================================================================
# Preferences and behavior patterns
# =============================================================================


class TestPreferences:
    def test_update_merges_and_coerces(self, engine):
        prefs = engine.update_preferences(
            guidance_style="direct",
            well_being_check_frequency=CheckFrequency.WEEKLY,
            focus_session_length="50",
        )
        assert prefs.guidance_style == GuidanceStyle.DIRECT
        assert prefs.well_being_check_frequency == CheckFrequency.WEEKLY
        assert prefs.focus_session_length == 50
        assert prefs.preferred_review_time == "17:00"

    def test_unknown_and_invalid_values_ignored(self, engine):
        prefs = engine.update_preferences(theme="dark", guidance_style="shouty")
        assert prefs.guidance_style == GuidanceStyle.GENTLE
        assert not hasattr(prefs, "theme")

    def test_review_time_drives_review_reminder(self, engine, clock):
        engine.update_preferences(preferred_review_time="19:15")
        engine.force_evaluation()
        [reminder] = engine.pending_reminders
        assert reminder.scheduled_for == clock.now.replace(hour=19, minute=15)


class TestBehaviorPatterns:
    def test_confidence_clamped(self, engine):
        high = engine.record_behavior_pattern(
            BehaviorPattern("always on", 5, PatternImpact.NEGATIVE, 1.7)
        )
        low = engine.record_behavior_pattern(
            BehaviorPattern("never on", 1, PatternImpact.NEUTRAL, -0.2)
        )
        assert high.confidence == 1.0
        assert low.confidence == 0.0

    def test_most_recent_first_capped_at_twenty(self, engine, memory_store):
        for n in range(25):
            engine.record_behavior_pattern(
                BehaviorPattern(f"p{n}", n, PatternImpact.POSITIVE, 0.5)
            )
        patterns = engine.behavior_patterns
        assert len(patterns) == 20
        assert patterns[0].pattern == "p24"
        # Only the ten most recent are persisted
        assert len(_saved(memory_store)["behavior_patterns"]) == 10


# =============================================================================
# Commands
# =============================================================================


def test_contextual_suggestions(engine):
    assert "Suggest a break" in engine.get_contextual_suggestions("well")
    assert engine.get_contextual_suggestions("unknown") == []


@pytest.mark.asyncio
async def test_interpret_without_interpreter(engine):
    assert await engine.interpret_command("plan my week") == []


@pytest.mark.asyncio
async def test_interpret_with_interpreter(memory_store, clock):
    engine = LunaEngine(store=memory_store, clock=clock, interpreter=EchoInterpreter())
    assert await engine.interpret_command("hello") == ["echo: hello"]


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    @pytest.mark.asyncio
    async def test_state_survives_restart(self, memory_store, clock):
        first = LunaEngine(store=memory_store, clock=clock)
        first.advance_stage()
        first.record_well_being(4)
        first.force_evaluation()
        first.start_recovery(2)
        first.update_preferences(celebration_style="minimal")

        second = LunaEngine(store=memory_store, clock=clock)
        assert await second.init() is True

        assert second.profile.current_stage == Stage.OPTIMIZATION
        assert second.profile.well_being_score == 4
        assert [i.id for i in second.insights] == [i.id for i in first.insights]
        assert second.recovery_progress.level == 2
        assert second.preferences.celebration_style == "minimal"
        assert second.last_proactive_check == clock.now
        await second.teardown()

    @pytest.mark.asyncio
    async def test_broken_store_never_raises(self, clock):
        engine = LunaEngine(store=BrokenStore(), clock=clock)
        assert await engine.init() is False

        engine.record_well_being(3)
        engine.force_evaluation()
        engine.start_recovery(1)
        assert engine.profile.well_being_score == 3
        await engine.teardown()

    @pytest.mark.asyncio
    async def test_corrupt_record_falls_back_to_defaults(self, memory_store, clock):
        memory_store.put_raw(STATE_KEY, "{{{")
        engine = LunaEngine(store=memory_store, clock=clock)
        assert await engine.init() is False
        assert engine.profile.current_stage == Stage.FOUNDATION
        await engine.teardown()

    def test_snapshot_is_deep_copy(self, engine):
        engine.force_evaluation()
        snapshot = engine.snapshot()
        snapshot.insights.clear()
        snapshot.profile.well_being_score = 1

        assert len(engine.insights) == 1
        assert engine.profile.well_being_score == 7
