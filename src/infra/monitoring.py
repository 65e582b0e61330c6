"""
Prometheus Monitoring for the Luna guidance engine.

Provides Prometheus metrics for:
- Proactive guidance evaluations (scheduled vs forced, debounced skips)
- Insights generated and rule failures, per rule
- Persistence load/save outcomes
- Recovery session events
- Latest well-being and system-health scores

The host application decides whether and how to expose these
(PrometheusMetrics.generate_metrics returns the text exposition format).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)


# =============================================================================
# Metrics Definitions
# =============================================================================

guidance_evaluations_total = Counter(
    "luna_guidance_evaluations_total",
    "Proactive guidance evaluations",
    ["trigger"],
)

guidance_checks_skipped_total = Counter(
    "luna_guidance_checks_skipped_total",
    "Proactive checks skipped",
    ["reason"],
)

guidance_evaluation_duration_seconds = Histogram(
    "luna_guidance_evaluation_duration_seconds",
    "Time spent evaluating the guidance rule set",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
)

insights_generated_total = Counter(
    "luna_insights_generated_total",
    "Insights added to the ledger",
    ["source"],
)

rule_failures_total = Counter(
    "luna_rule_failures_total",
    "Guidance rules that raised during evaluation",
    ["rule"],
)

persistence_operations_total = Counter(
    "luna_persistence_operations_total",
    "Engine state load/save operations",
    ["operation", "outcome"],
)

recovery_events_total = Counter(
    "luna_recovery_events_total",
    "Recovery workflow transitions",
    ["level", "event"],
)

profile_score_gauge = Gauge(
    "luna_profile_score",
    "Latest recorded profile score (1-10)",
    ["score"],
)


# =============================================================================
# Metrics Recording Functions
# =============================================================================


def record_evaluation(trigger: str, duration_seconds: float) -> None:
    """
    Record a completed rule evaluation.

    Args:
        trigger: "scheduled" (ticker or manual check) or "forced"
        duration_seconds: Time spent evaluating all rules
    """
    guidance_evaluations_total.labels(trigger=trigger).inc()
    guidance_evaluation_duration_seconds.observe(duration_seconds)


def record_check_skipped(reason: str) -> None:
    """
    Record a proactive check that did not evaluate.

    Args:
        reason: "disabled" or "debounced"
    """
    guidance_checks_skipped_total.labels(reason=reason).inc()


def record_insight_generated(source: str) -> None:
    """
    Record an insight entering the ledger.

    Args:
        source: Rule name, or "user" for explicitly added insights
    """
    insights_generated_total.labels(source=source).inc()


def record_rule_failure(rule: str) -> None:
    rule_failures_total.labels(rule=rule).inc()


def record_persistence(operation: str, outcome: str) -> None:
    """
    Record a persistence operation.

    Args:
        operation: "load" or "save"
        outcome: "ok", "missing", "corrupt" or "error"
    """
    persistence_operations_total.labels(operation=operation, outcome=outcome).inc()


def record_recovery_event(level: int, event: str) -> None:
    """
    Record a recovery workflow transition.

    Args:
        level: Recovery level
        event: "started", "step_completed" or "finished"
    """
    recovery_events_total.labels(level=str(level), event=event).inc()


def update_profile_scores(well_being: int, system_health: int) -> None:
    profile_score_gauge.labels(score="well_being").set(well_being)
    profile_score_gauge.labels(score="system_health").set(system_health)


# =============================================================================
# Context Managers for Automatic Timing
# =============================================================================


@contextmanager
def track_evaluation(trigger: str) -> Iterator[None]:
    """
    Context manager timing one rule evaluation.

    Usage:
        >>> with track_evaluation("forced"):
        ...     scheduler.run_rules(now)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        record_evaluation(trigger, time.perf_counter() - start_time)


# =============================================================================
# Prometheus Metrics Export
# =============================================================================


class PrometheusMetrics:
    """Prometheus metrics exporter."""

    @staticmethod
    def generate_metrics() -> bytes:
        """
        Generate Prometheus metrics in text format.

        Returns:
            Metrics in Prometheus text exposition format
        """
        return generate_latest()

    @staticmethod
    def get_metrics_as_text() -> str:
        return PrometheusMetrics.generate_metrics().decode("utf-8")
