"""
Luna Engine - the adaptive guidance and recovery facade.

LunaEngine is the single entry point host applications call. It owns:
- ProfileStore: stage, metrics, scores, energy table
- InsightLedger: insights and reminders
- RecoveryWorkflow: the recovery state machine
- GuidanceScheduler: the proactive rule loop and its ticker task
- PersistenceAdapter: one persisted record, written through on every mutation

Every mutating call updates in-memory state first and then saves the full
snapshot. A failing store is logged and counted, never raised to the caller.

The engine is an explicit context object, not a singleton:

    engine = LunaEngine(store=get_redis_service())
    await engine.init()
    engine.record_well_being(4)
    engine.force_evaluation()
    await engine.teardown()
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from collections import deque
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from src.config.framework import (
    RECOVERY_LEVELS,
    STAGE_DEFINITIONS,
    RecoveryLevel,
    recovery_level_for_health,
    total_weeks_for,
)
from src.config.guidance import (
    ASSESSMENT_HISTORY_CAP,
    BEHAVIOR_PATTERN_CAP,
    HEALTHY_SCORE,
    LOW_SYSTEM_HEALTH_THRESHOLD,
    LOW_WELL_BEING_THRESHOLD,
    GuidanceSettings,
)
from src.infra.monitoring import (
    record_insight_generated,
    record_recovery_event,
    update_profile_scores,
)
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
    MetricTrend,
    Preferences,
    ProductivityProfile,
    RecoveryProgress,
    Reminder,
    ReminderDraft,
    Stage,
    UserMetric,
    utcnow,
)
from src.services.command_interpreter import (
    CommandInterpreter,
    GuardedInterpreter,
    contextual_suggestions,
)
from src.services.guidance.rules import DEFAULT_RULES, GuidanceRule, RuleContext
from src.services.guidance.scheduler import EvaluationResult, GuidanceScheduler
from src.services.insight_ledger import InsightLedger
from src.services.persistence import KeyValueStore, PersistenceAdapter
from src.services.profile_store import ProfileStore
from src.services.recovery import RecoveryWorkflow
from src.services.redis_service import get_redis_service

logger = logging.getLogger(__name__)

# Preference field -> coercion applied to incoming values
_PREFERENCE_COERCERS: dict[str, Callable[[Any], Any]] = {
    "preferred_review_time": str,
    "preferred_break_interval": int,
    "focus_session_length": int,
    "well_being_check_frequency": CheckFrequency,
    "guidance_style": GuidanceStyle,
    "celebration_style": CelebrationStyle,
}


# =============================================================================
# Assessment derivation
# =============================================================================


def derive_assessment(profile: ProductivityProfile, now: datetime) -> Assessment:
    """Snapshot the profile into an Assessment with derived findings.

    Args:
        profile: Profile at assessment time
        now: Assessment date

    Returns:
        Frozen assessment; completion is capped at 100%
    """
    total_weeks = total_weeks_for(profile.current_stage)
    completion = round(min(profile.week_in_stage / total_weeks * 100, 100.0), 1)

    strengths: list[str] = []
    improvements: list[str] = []
    for metric in profile.current_metrics:
        label = metric.name or metric.metric_id
        if metric.trend == MetricTrend.IMPROVING:
            strengths.append(f"{label} is improving")
        elif metric.trend == MetricTrend.DECLINING:
            improvements.append(f"{label} is declining")

    well_being = profile.well_being_score
    if well_being >= HEALTHY_SCORE:
        strengths.append(f"Well-being is in a healthy range ({well_being}/10)")
    elif well_being < LOW_WELL_BEING_THRESHOLD:
        improvements.append(f"Well-being needs attention ({well_being}/10)")

    health = profile.system_health_score
    if health >= HEALTHY_SCORE:
        strengths.append(f"System health is strong ({health}/10)")
    elif health <= LOW_SYSTEM_HEALTH_THRESHOLD:
        improvements.append(
            f"System health is low ({health}/10); "
            f"a level {recovery_level_for_health(health)} recovery is recommended"
        )

    return Assessment(
        date=now,
        stage=profile.current_stage,
        completion_percentage=completion,
        strengths=tuple(strengths),
        improvements=tuple(improvements),
        next_steps=tuple(_next_steps(profile)),
        metrics=tuple(copy.deepcopy(profile.current_metrics)),
    )


def _next_steps(profile: ProductivityProfile) -> list[str]:
    definition = STAGE_DEFINITIONS.get(profile.current_stage)
    if definition is not None:
        block = definition.next_block(profile.week_in_stage)
        if block is not None:
            return list(block.activities)

    index = STAGE_ORDER.index(profile.current_stage)
    if index < len(STAGE_ORDER) - 1:
        upcoming = STAGE_DEFINITIONS.get(STAGE_ORDER[index + 1])
        name = upcoming.name if upcoming else STAGE_ORDER[index + 1].value.title()
        return [f"Advance to the {name} stage when you feel ready"]
    return ["Keep the weekly review rhythm going"]


# =============================================================================
# Engine
# =============================================================================


class LunaEngine:
    """Adaptive guidance and recovery engine.

    Args:
        settings: Engine settings (defaults to GuidanceSettings())
        store: Key-value backend for the persisted record (defaults to Redis)
        interpreter: External command interpreter, optional
        clock: Wall-clock source, injectable for tests
        recovery_catalog: Recovery levels that may be started
        rules: Guidance rule set
    """

    def __init__(
        self,
        settings: GuidanceSettings | None = None,
        store: KeyValueStore | None = None,
        interpreter: CommandInterpreter | None = None,
        clock: Callable[[], datetime] = utcnow,
        recovery_catalog: Iterable[RecoveryLevel] = RECOVERY_LEVELS,
        rules: Iterable[GuidanceRule] = DEFAULT_RULES,
    ) -> None:
        self._settings = settings or GuidanceSettings()
        self._clock = clock

        self._profiles = ProfileStore(clock=clock)
        self._ledger = InsightLedger(cap=self._settings.insight_cap, clock=clock)
        self._recovery = RecoveryWorkflow(catalog=recovery_catalog, clock=clock)
        self._scheduler = GuidanceScheduler(
            ledger=self._ledger,
            context_factory=self._rule_context,
            interval=self._settings.proactive_interval,
            rules=rules,
            clock=clock,
            on_tick=self.check_for_proactive_guidance,
            enabled=self._settings.proactive_by_default,
        )
        self._persistence = PersistenceAdapter(
            store if store is not None else get_redis_service(),
            key=self._settings.state_key,
            insight_cap=self._settings.insight_cap,
        )
        self._interpreter = GuardedInterpreter(interpreter) if interpreter else None

        self._assessments: deque[Assessment] = deque(maxlen=ASSESSMENT_HISTORY_CAP)
        self._preferences = Preferences()
        self._behavior_patterns: deque[BehaviorPattern] = deque(maxlen=BEHAVIOR_PATTERN_CAP)
        self._initialized = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> bool:
        """Load persisted state and start the proactive ticker.

        Returns:
            True if a persisted record was restored, False if defaults are used
        """
        if self._initialized:
            return False
        state = self._persistence.load()
        if state is not None:
            self._apply(state)
            logger.info(
                "Restored Luna state (stage=%s, week=%s, insights=%d)",
                state.profile.current_stage,
                state.profile.week_in_stage,
                len(state.insights),
            )
        else:
            logger.info("No usable Luna state found, starting from defaults")

        await self._scheduler.start()
        self._initialized = True
        return state is not None

    async def teardown(self) -> None:
        """Cancel the ticker and write a final snapshot."""
        await self._scheduler.stop()
        self._persist()
        self._initialized = False

    def _apply(self, state: EngineState) -> None:
        self._profiles.replace(state.profile)
        self._ledger.restore(state.insights, state.reminders)
        self._recovery.restore(state.recovery_progress)
        self._assessments = deque(state.assessments, maxlen=ASSESSMENT_HISTORY_CAP)
        self._preferences = state.preferences
        self._behavior_patterns = deque(state.behavior_patterns, maxlen=BEHAVIOR_PATTERN_CAP)
        self._scheduler.last_check = state.last_proactive_check
        if state.is_proactive_mode:
            self._scheduler.enable()
        else:
            self._scheduler.disable()

    def _persist(self) -> bool:
        return self._persistence.save(self._state())

    def _state(self) -> EngineState:
        return EngineState(
            profile=self._profiles.current,
            insights=deque(self._ledger.recent_insights(), maxlen=self._settings.insight_cap),
            reminders=self._ledger.reminders(),
            assessments=deque(self._assessments, maxlen=ASSESSMENT_HISTORY_CAP),
            recovery_progress=self._recovery.progress,
            is_proactive_mode=self._scheduler.enabled,
            last_proactive_check=self._scheduler.last_check,
            preferences=self._preferences,
            behavior_patterns=deque(self._behavior_patterns, maxlen=BEHAVIOR_PATTERN_CAP),
        )

    def snapshot(self) -> EngineState:
        """Deep copy of the whole engine state."""
        return copy.deepcopy(self._state())

    # -------------------------------------------------------------------------
    # Read accessors
    # -------------------------------------------------------------------------

    @property
    def profile(self) -> ProductivityProfile:
        return self._profiles.get()

    @property
    def preferences(self) -> Preferences:
        return copy.deepcopy(self._preferences)

    @property
    def insights(self) -> list[Insight]:
        return self._ledger.recent_insights()

    @property
    def reminders(self) -> list[Reminder]:
        return self._ledger.reminders()

    @property
    def pending_reminders(self) -> list[Reminder]:
        return self._ledger.pending_reminders()

    @property
    def assessments(self) -> list[Assessment]:
        return list(self._assessments)

    @property
    def behavior_patterns(self) -> list[BehaviorPattern]:
        return copy.deepcopy(list(self._behavior_patterns))

    @property
    def recovery_progress(self) -> RecoveryProgress | None:
        return self._recovery.progress

    @property
    def is_in_recovery_mode(self) -> bool:
        return self._recovery.is_active

    @property
    def is_proactive_mode(self) -> bool:
        return self._scheduler.enabled

    @property
    def last_proactive_check(self) -> datetime | None:
        return self._scheduler.last_check

    @property
    def scheduler(self) -> GuidanceScheduler:
        return self._scheduler

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    def update_profile(self, **changes: Any) -> ProductivityProfile:
        profile = self._profiles.update(**changes)
        self._report_scores()
        self._persist()
        return profile

    def advance_stage(self) -> Stage:
        stage = self._profiles.advance_stage()
        self._persist()
        return stage

    def advance_week(self) -> int:
        week = self._profiles.advance_week()
        self._persist()
        return week

    def record_metric(self, metric: UserMetric) -> UserMetric:
        recorded = self._profiles.record_metric(metric)
        self._persist()
        return recorded

    def record_well_being(self, score: float) -> int:
        stored = self._profiles.record_well_being(score)
        self._report_scores()
        self._persist()
        return stored

    def record_system_health(self, score: float) -> int:
        stored = self._profiles.record_system_health(score)
        self._report_scores()
        self._persist()
        return stored

    def record_energy(self, hour: int, level: EnergyLevel | str) -> EnergyReading | None:
        """Record an energy observation; out-of-range hours are ignored."""
        reading = self._profiles.record_energy(hour, level)
        if reading is not None:
            self._persist()
        return reading

    def complete_principle(self, principle_id: str) -> set[str]:
        principles = self._profiles.complete_principle(principle_id)
        self._persist()
        return principles

    def get_energy_recommendation(self, hour: int) -> EnergyLevel | None:
        return self._profiles.energy_recommendation(hour)

    def _report_scores(self) -> None:
        profile = self._profiles.current
        update_profile_scores(profile.well_being_score, profile.system_health_score)

    # -------------------------------------------------------------------------
    # Assessments
    # -------------------------------------------------------------------------

    def trigger_assessment(self) -> Assessment:
        """Snapshot the profile, record it and stamp the last assessment date."""
        now = self._clock()
        assessment = derive_assessment(self._profiles.current, now)
        self._assessments.appendleft(assessment)
        self._profiles.update(last_assessment=now)
        logger.info(
            "Assessment for stage %s at %.1f%% complete",
            assessment.stage,
            assessment.completion_percentage,
        )
        self._persist()
        return assessment

    # -------------------------------------------------------------------------
    # Insights and reminders
    # -------------------------------------------------------------------------

    def add_insight(self, draft: InsightDraft) -> str:
        insight_id = self._ledger.add_insight(draft)
        record_insight_generated("user")
        self._persist()
        return insight_id

    def dismiss_insight(self, insight_id: str) -> bool:
        removed = self._ledger.dismiss(insight_id)
        if removed:
            self._persist()
        return removed

    def schedule_reminder(self, draft: ReminderDraft) -> str:
        reminder_id = self._ledger.schedule_reminder(draft)
        self._persist()
        return reminder_id

    def complete_reminder(self, reminder_id: str) -> bool:
        changed = self._ledger.complete_reminder(reminder_id)
        if changed:
            self._persist()
        return changed

    # -------------------------------------------------------------------------
    # Proactive guidance
    # -------------------------------------------------------------------------

    def enable_proactive_mode(self) -> None:
        self._scheduler.enable()
        self._persist()

    def disable_proactive_mode(self) -> None:
        self._scheduler.disable()
        self._persist()

    def check_for_proactive_guidance(self, now: datetime | None = None) -> EvaluationResult | None:
        """Debounced rule evaluation; also what the ticker runs."""
        result = self._scheduler.check(now)
        if result is not None:
            self._persist()
        return result

    def force_evaluation(self, now: datetime | None = None) -> EvaluationResult:
        """Evaluate every rule now, regardless of cadence or proactive mode."""
        result = self._scheduler.force_evaluate(now)
        self._persist()
        return result

    def _rule_context(self, now: datetime) -> RuleContext:
        return RuleContext(
            profile=self._profiles.get(),
            preferences=copy.deepcopy(self._preferences),
            now=now,
            in_recovery=self._recovery.is_active,
            pending_reminders=tuple(self._ledger.pending_reminders()),
        )

    # -------------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------------

    def start_recovery(self, level: int) -> RecoveryProgress | None:
        """Start a recovery session; unknown levels leave the engine idle."""
        progress = self._recovery.start(level)
        if progress is None:
            return None
        record_recovery_event(level, "started")
        self._persist()
        return progress

    def complete_recovery_step(self, step: str) -> RecoveryProgress | None:
        progress = self._recovery.complete_step(step)
        if progress is None:
            return None
        record_recovery_event(progress.level, "step_completed")
        self._persist()
        return progress

    def finish_recovery(self) -> RecoveryProgress | None:
        finished = self._recovery.finish()
        if finished is not None:
            record_recovery_event(finished.level, "finished")
        self._persist()
        return finished

    # -------------------------------------------------------------------------
    # Preferences and behavior patterns
    # -------------------------------------------------------------------------

    def update_preferences(self, **changes: Any) -> Preferences:
        """Merge preference fields; unknown keys and invalid values are ignored."""
        accepted: dict[str, Any] = {}
        for name, value in changes.items():
            coerce = _PREFERENCE_COERCERS.get(name)
            if coerce is None:
                logger.warning("Ignoring unknown preference %r", name)
                continue
            try:
                accepted[name] = coerce(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid value %r for preference %s", value, name)

        self._preferences = dataclasses.replace(self._preferences, **accepted)
        self._persist()
        return self.preferences

    def record_behavior_pattern(self, pattern: BehaviorPattern) -> BehaviorPattern:
        """Prepend a pattern, clamping confidence to [0, 1]."""
        recorded = copy.deepcopy(pattern)
        recorded.confidence = min(1.0, max(0.0, recorded.confidence))
        self._behavior_patterns.appendleft(recorded)
        self._persist()
        return copy.deepcopy(recorded)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def get_contextual_suggestions(self, context: str) -> list[str]:
        return contextual_suggestions(context)

    async def interpret_command(
        self,
        text: str,
        context: str | None = None,
    ) -> list[str]:
        """Ask the external interpreter for suggested commands.

        Returns [] when no interpreter is configured, the circuit is open
        or the interpreter fails.
        """
        if self._interpreter is None:
            return []
        return await self._interpreter.interpret(text, context)
