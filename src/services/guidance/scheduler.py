"""
Guidance Scheduler for the Luna proactive engine.

Runs the guidance rule set on a fixed cadence while proactive mode is
enabled:

1. Skip when proactive mode is off, or the last evaluation happened less
   than one cadence period ago (debounce).
2. Stamp "now" as the last evaluation time, whether or not a rule fires.
3. Evaluate every rule against a RuleContext snapshot, each inside its own
   error boundary.
4. Append fired insights/reminders to the InsightLedger (subject to its cap).

The periodic part is a single asyncio task owned by the scheduler's
start()/stop() lifecycle. enable() while already enabled never creates a
second task. Each tick runs a synchronous read-evaluate-write cycle, so two
evaluations never overlap.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.config.guidance import PROACTIVE_CHECK_INTERVAL
from src.infra.monitoring import (
    record_check_skipped,
    record_insight_generated,
    record_rule_failure,
    track_evaluation,
)
from src.lib.exceptions import RuleEvaluationError
from src.models.guidance import ensure_aware, utcnow
from src.services.guidance.rules import DEFAULT_RULES, GuidanceRule, RuleContext
from src.services.insight_ledger import InsightLedger

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Side effects of one rule evaluation."""

    evaluated_at: datetime
    trigger: str
    fired_rules: list[str] = field(default_factory=list)
    insight_ids: list[str] = field(default_factory=list)
    reminder_ids: list[str] = field(default_factory=list)
    failed_rules: list[str] = field(default_factory=list)


class GuidanceScheduler:
    """Periodic evaluator of the guidance rule set.

    Args:
        ledger: Destination for fired insights and reminders
        context_factory: Builds the RuleContext snapshot for a given instant
        interval: Cadence of the periodic check (also the debounce window)
        rules: Ordered rule set (defaults to DEFAULT_RULES)
        clock: Wall-clock source
        on_tick: Called on every ticker wake-up instead of check(); the engine
            passes its own proactive check so results get persisted

    Usage:
        scheduler = GuidanceScheduler(ledger, context_factory)
        await scheduler.start()
        scheduler.disable()
        await scheduler.stop()
    """

    def __init__(
        self,
        ledger: InsightLedger,
        context_factory: Callable[[datetime], RuleContext],
        interval: timedelta = PROACTIVE_CHECK_INTERVAL,
        rules: Iterable[GuidanceRule] = DEFAULT_RULES,
        clock: Callable[[], datetime] = utcnow,
        on_tick: Callable[[], object] | None = None,
        enabled: bool = True,
    ) -> None:
        self._ledger = ledger
        self._context_factory = context_factory
        self._interval = interval
        self._rules = tuple(rules)
        self._clock = clock
        self._on_tick = on_tick or self.check

        self._enabled = enabled
        self._last_check: datetime | None = None
        self._started = False
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def interval(self) -> timedelta:
        return self._interval

    @property
    def last_check(self) -> datetime | None:
        return self._last_check

    @last_check.setter
    def last_check(self, value: datetime | None) -> None:
        self._last_check = ensure_aware(value) if value is not None else None

    @property
    def ticker_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def rules(self) -> tuple[GuidanceRule, ...]:
        return self._rules

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def is_due(self, now: datetime) -> bool:
        """True when at least one cadence has passed since the last evaluation."""
        now = ensure_aware(now)
        if self._last_check is None:
            return True
        return now - self._last_check >= self._interval

    def check(self, now: datetime | None = None) -> EvaluationResult | None:
        """Debounced evaluation.

        Returns:
            The evaluation result, or None if skipped
        """
        now = self._resolve(now)
        if not self._enabled:
            record_check_skipped("disabled")
            return None
        if not self.is_due(now):
            record_check_skipped("debounced")
            logger.debug("Proactive check debounced (last at %s)", self._last_check)
            return None
        return self._evaluate(now, trigger="scheduled")

    def force_evaluate(self, now: datetime | None = None) -> EvaluationResult:
        """Evaluate immediately, ignoring cadence and proactive mode.

        Still stamps the last evaluation time so the next scheduled check
        is debounced against this one.
        """
        return self._evaluate(self._resolve(now), trigger="forced")

    def _resolve(self, now: datetime | None) -> datetime:
        # Naive caller timestamps are read as UTC
        return ensure_aware(now) if now is not None else self._clock()

    def _evaluate(self, now: datetime, trigger: str) -> EvaluationResult:
        self._last_check = now
        result = EvaluationResult(evaluated_at=now, trigger=trigger)

        with track_evaluation(trigger):
            ctx = self._context_factory(now)
            for rule in self._rules:
                try:
                    outcome = rule.evaluate(ctx)
                except Exception as exc:  # Intentional catch-all: one broken rule must not stop the others
                    error = RuleEvaluationError(rule.name, exc)
                    logger.warning("%s", error, exc_info=exc)
                    record_rule_failure(rule.name)
                    result.failed_rules.append(rule.name)
                    continue

                if outcome is None:
                    continue
                result.fired_rules.append(rule.name)
                if outcome.insight is not None:
                    result.insight_ids.append(self._ledger.add_insight(outcome.insight))
                    record_insight_generated(rule.name)
                for reminder in outcome.reminders:
                    result.reminder_ids.append(self._ledger.schedule_reminder(reminder))

        if result.fired_rules:
            logger.info(
                "Guidance evaluation (%s) fired rules: %s",
                trigger,
                ", ".join(result.fired_rules),
            )
        return result

    # -------------------------------------------------------------------------
    # Proactive mode and ticker lifecycle
    # -------------------------------------------------------------------------

    def enable(self) -> None:
        """Turn proactive mode on; starts the ticker if the scheduler is running."""
        self._enabled = True
        self._ensure_ticker()

    def disable(self) -> None:
        """Turn proactive mode off and cancel the ticker."""
        self._enabled = False
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def start(self) -> None:
        self._started = True
        self._ensure_ticker()

    async def stop(self) -> None:
        self._started = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _ensure_ticker(self) -> None:
        if not (self._started and self._enabled) or self.ticker_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: start() creates the task once the host runs one
            logger.debug("No running event loop; proactive ticker deferred")
            return
        self._task = loop.create_task(self._run(), name="luna-proactive-ticker")

    async def _run(self) -> None:
        interval_s = self._interval.total_seconds()
        while True:
            await asyncio.sleep(interval_s)
            try:
                self._on_tick()
            except Exception:  # Intentional catch-all: the ticker must survive a failed cycle
                logger.exception("Proactive guidance tick failed")
