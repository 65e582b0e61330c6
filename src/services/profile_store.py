"""
Profile Store for the Luna guidance engine.

Holds the user's ProductivityProfile and exposes pure read/update
operations over it:
- Stage progression (forward only, no-op at the terminal stage)
- Metric upserts
- Well-being and system-health scores (clamped to 1-10)
- Hourly energy observations with growing confidence

Input policy is lenient: values are coerced to the field type, clamped
or ignored, never rejected, so the guidance loop keeps running on bad
input and every stored profile stays serializable.
Every update builds a new profile object; callers receive deep copies.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import math
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from src.config.guidance import (
    ENERGY_CONFIDENCE_STEP,
    ENERGY_RECOMMENDATION_CONFIDENCE,
    WELL_BEING_MAX,
    WELL_BEING_MIN,
)
from src.models.guidance import (
    STAGE_ORDER,
    EnergyLevel,
    EnergyReading,
    ProductivityProfile,
    Stage,
    UserMetric,
    utcnow,
)
from src.services.persistence import decode_energy_pattern, parse_datetime

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = frozenset(f.name for f in dataclasses.fields(ProductivityProfile))


def clamp_score(score: Any) -> int:
    """Clamp a 1-10 score, rounding fractional input.

    Raises:
        TypeError: score is not a number (None, objects)
        ValueError: score is NaN, a bool or a non-numeric string
    """
    if isinstance(score, bool):
        raise ValueError(f"not a score: {score!r}")
    value = float(score)
    if math.isnan(value):
        raise ValueError("score is NaN")
    return int(round(max(WELL_BEING_MIN, min(WELL_BEING_MAX, value))))


def coerce_stage(value: Any) -> Stage:
    """Stage from an enum member or its string value; ValueError otherwise."""
    return Stage(value)


def coerce_week(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not a week: {value!r}")
    return max(1, int(value))


def coerce_datetime(value: Any) -> datetime | None:
    """Aware datetime from a datetime or ISO string; None clears the field."""
    if value is None:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"not a timestamp: {value!r}")
    return parsed


def coerce_principles(value: Any) -> set[str]:
    if isinstance(value, str):
        return {value}
    return {str(item) for item in value}


def normalize_energy_pattern(entries: Any) -> list[EnergyReading]:
    """Rebuild a 24-entry energy table from readings or their dict form.

    Missing hours get the default prior; duplicates keep the last entry;
    out-of-range hours and unknown levels are dropped.
    """
    if isinstance(entries, (str, bytes)) or not isinstance(entries, Iterable):
        raise TypeError(f"not an energy table: {entries!r}")
    raw = [e.to_dict() if isinstance(e, EnergyReading) else e for e in entries]
    return decode_energy_pattern(raw)


def merge_metrics(
    existing: list[UserMetric],
    incoming: list[UserMetric],
) -> list[UserMetric]:
    """Replace metrics with matching ids in place, append new ones."""
    merged = list(existing)
    positions = {m.metric_id: i for i, m in enumerate(merged)}
    for metric in incoming:
        if metric.metric_id in positions:
            merged[positions[metric.metric_id]] = metric
        else:
            positions[metric.metric_id] = len(merged)
            merged.append(metric)
    return merged


def _metric_list(value: Any) -> list[UserMetric]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise TypeError(f"not a metric list: {value!r}")
    items = list(value)
    metrics = [m for m in items if isinstance(m, UserMetric)]
    if len(metrics) != len(items):
        logger.warning("Dropping %d entries that are not UserMetric", len(items) - len(metrics))
    return metrics


# Profile field -> coercion applied by ProfileStore.update
_FIELD_COERCERS: dict[str, Callable[[Any], Any]] = {
    "current_stage": coerce_stage,
    "week_in_stage": coerce_week,
    "completed_principles": coerce_principles,
    "current_metrics": _metric_list,
    "last_assessment": coerce_datetime,
    "well_being_score": clamp_score,
    "system_health_score": clamp_score,
    "energy_pattern": normalize_energy_pattern,
}


class ProfileStore:
    """Owner of the user's ProductivityProfile.

    Usage:
        store = ProfileStore()
        store.record_well_being(15)   # stored as 10
        store.advance_stage()         # foundation -> optimization
    """

    def __init__(
        self,
        profile: ProductivityProfile | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._profile = profile or ProductivityProfile()
        self._clock = clock

    def get(self) -> ProductivityProfile:
        """Return a deep copy of the current profile."""
        return copy.deepcopy(self._profile)

    @property
    def current(self) -> ProductivityProfile:
        """Read-only view for in-engine consumers (rules, persistence)."""
        return self._profile

    def replace(self, profile: ProductivityProfile) -> None:
        """Swap in a whole profile (used when state is loaded)."""
        self._profile = profile

    def update(self, **changes: Any) -> ProductivityProfile:
        """Shallow-merge profile fields.

        Every value is coerced to the field's type first. Values that cannot
        be coerced are ignored and the field keeps its current value:
        - ``current_stage`` accepts a Stage or its string value and never
          moves backwards; a forward move resets ``week_in_stage`` to 1
          unless a week is given
        - scores are clamped to 1-10
        - naive ``last_assessment`` timestamps are read as UTC
        - ``energy_pattern`` is normalized back to one entry per hour
        - ``current_metrics`` is deep-merged by metric id rather than replaced

        Unknown field names are ignored.

        Returns:
            Deep copy of the updated profile
        """
        unknown = set(changes) - _PROFILE_FIELDS
        if unknown:
            logger.warning("Ignoring unknown profile fields: %s", sorted(unknown))

        accepted: dict[str, Any] = {}
        for name, value in changes.items():
            coerce = _FIELD_COERCERS.get(name)
            if coerce is None:
                continue
            try:
                accepted[name] = coerce(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid value %r for profile field %s", value, name)

        if "current_stage" in accepted:
            current = self._profile.current_stage
            stage = accepted["current_stage"]
            if STAGE_ORDER.index(stage) < STAGE_ORDER.index(current):
                logger.warning("Ignoring backward stage move %s -> %s", current, stage)
                del accepted["current_stage"]
            elif stage != current:
                accepted.setdefault("week_in_stage", 1)
                logger.info("Stage set %s -> %s", current, stage)

        if "current_metrics" in accepted:
            accepted["current_metrics"] = merge_metrics(
                self._profile.current_metrics, accepted["current_metrics"]
            )

        self._profile = dataclasses.replace(self._profile, **accepted)
        return self.get()

    def advance_stage(self) -> Stage:
        """Move to the next stage and reset week-in-stage to 1.

        No-op at the terminal stage.

        Returns:
            The stage after the call
        """
        stage = self._profile.current_stage
        index = STAGE_ORDER.index(stage)
        if index >= len(STAGE_ORDER) - 1:
            logger.debug("Already at terminal stage %s", stage)
            return stage

        next_stage = STAGE_ORDER[index + 1]
        self._profile = dataclasses.replace(
            self._profile, current_stage=next_stage, week_in_stage=1
        )
        logger.info("Advanced stage %s -> %s", stage, next_stage)
        return next_stage

    def advance_week(self) -> int:
        self._profile = dataclasses.replace(
            self._profile, week_in_stage=self._profile.week_in_stage + 1
        )
        return self._profile.week_in_stage

    def record_metric(self, metric: UserMetric) -> UserMetric:
        """Upsert a metric by id and stamp its last-updated time."""
        stamped = dataclasses.replace(metric, last_updated=self._clock())
        self._profile = dataclasses.replace(
            self._profile,
            current_metrics=merge_metrics(self._profile.current_metrics, [stamped]),
        )
        return copy.deepcopy(stamped)

    def record_energy(self, hour: int, level: EnergyLevel) -> EnergyReading | None:
        """Record an energy observation for an hour of the day.

        The matching entry's confidence grows by a fixed step, capped at 1.0.

        Returns:
            The updated entry, or None if the hour is outside 0-23
        """
        if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
            logger.warning("Ignoring energy reading for out-of-range hour %s", hour)
            return None
        try:
            level = EnergyLevel(level)
        except ValueError:
            logger.warning("Ignoring unknown energy level %r", level)
            return None

        updated: EnergyReading | None = None
        pattern: list[EnergyReading] = []
        for entry in self._profile.energy_pattern:
            if entry.hour == hour:
                updated = EnergyReading(
                    hour=hour,
                    level=level,
                    confidence=round(min(1.0, entry.confidence + ENERGY_CONFIDENCE_STEP), 4),
                )
                pattern.append(updated)
            else:
                pattern.append(entry)

        self._profile = dataclasses.replace(self._profile, energy_pattern=pattern)
        return copy.copy(updated)

    def record_well_being(self, score: float) -> int:
        """Store a well-being score clamped to 1-10.

        Unusable input keeps the current score, which is returned.
        """
        return self._record_score("well_being_score", score)

    def record_system_health(self, score: float) -> int:
        """Store a system-health score clamped to 1-10."""
        return self._record_score("system_health_score", score)

    def _record_score(self, field_name: str, score: Any) -> int:
        try:
            clamped = clamp_score(score)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid %s %r", field_name, score)
            return int(getattr(self._profile, field_name))
        if clamped != score:
            logger.debug("Clamped %s %s -> %s", field_name, score, clamped)
        self._profile = dataclasses.replace(self._profile, **{field_name: clamped})
        return clamped

    def complete_principle(self, principle_id: str) -> set[str]:
        principles = set(self._profile.completed_principles)
        principles.add(principle_id)
        self._profile = dataclasses.replace(self._profile, completed_principles=principles)
        return set(principles)

    def energy_recommendation(self, hour: int) -> EnergyLevel | None:
        """Return the learned level for an hour once confidence is high enough."""
        entry = self._profile.energy_at(hour)
        if entry is None or entry.confidence <= ENERGY_RECOMMENDATION_CONFIDENCE:
            return None
        return entry.level
