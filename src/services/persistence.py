"""
Persistence Adapter for the Luna guidance engine.

Saves and loads the whole EngineState as one JSON record under one key of
a key-value store exposing get_sync/set_sync (RedisService, or
InMemoryKeyValueStore for tests and single-process hosts).

Record layout (schema_version 1):
    {
        "schema_version": 1,
        "profile": {...},
        "ledger": {"insights": [...], "reminders": [...]},
        "assessments": [...],
        "recovery_progress": {...} | null,
        "is_proactive_mode": true,
        "last_proactive_check": "ISO-8601" | null,
        "preferences": {...},
        "behavior_patterns": [...]
    }

Version 0 is the camelCase record the browser client wrote under
"luna-framework-data"; it is migrated on load.

Failure policy:
- save() never raises; failures are logged and counted
- load() returns None for a missing, malformed or unmigratable record
- sub-records are decoded field by field: a bad date, enum or list entry
  falls back to its default instead of discarding the whole record
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, TypeVar

from src.config.guidance import (
    ASSESSMENT_HISTORY_CAP,
    BEHAVIOR_PATTERN_CAP,
    DEFAULT_SYSTEM_HEALTH,
    DEFAULT_WELL_BEING,
    INSIGHT_CAP,
    LEGACY_STATE_KEY,
    PERSISTED_BEHAVIOR_PATTERN_WINDOW,
    SCHEMA_VERSION,
    STATE_KEY,
    WELL_BEING_MAX,
    WELL_BEING_MIN,
)
from src.infra.monitoring import record_persistence
from src.lib.exceptions import MigrationError, SerializationError
from src.models.guidance import (
    Assessment,
    BehaviorPattern,
    CelebrationStyle,
    CheckFrequency,
    EnergyLevel,
    EnergyReading,
    EngineState,
    GuidanceStyle,
    Insight,
    InsightType,
    MetricTrend,
    PatternImpact,
    Preferences,
    Priority,
    ProductivityProfile,
    RecoveryProgress,
    Reminder,
    ReminderType,
    Stage,
    UserMetric,
    default_energy_pattern,
    utcnow,
)
from src.services.redis_service import dumps

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=StrEnum)


class KeyValueStore(Protocol):
    """Minimal store contract used by PersistenceAdapter."""

    def get_sync(self, key: str) -> str | None: ...

    def set_sync(self, key: str, value: Any, ttl: int | None = None) -> bool: ...


class InMemoryKeyValueStore:
    """Process-local store with the same JSON contract as RedisService."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get_sync(self, key: str) -> str | None:
        return self._data.get(key)

    def set_sync(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self._data[key] = dumps(value)
        return True

    def put_raw(self, key: str, raw: str) -> None:
        """Store a pre-encoded string as-is (e.g. a legacy record)."""
        self._data[key] = raw

    def __contains__(self, key: str) -> bool:
        return key in self._data


# =============================================================================
# Field decoders
# =============================================================================


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp into an aware datetime, None if unusable."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def parse_enum(enum_cls: type[E], value: Any, default: E) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


def _score(value: Any, default: int) -> int:
    return max(WELL_BEING_MIN, min(WELL_BEING_MAX, _int(value, default)))


def _decode_list(
    items: Any,
    decoder: Callable[[dict[str, Any]], Any],
    what: str,
) -> list[Any]:
    """Decode each dict entry, skipping entries that cannot be decoded."""
    if not isinstance(items, list):
        return []
    decoded = []
    for raw in items:
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object %s entry", what)
            continue
        try:
            decoded.append(decoder(raw))
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Skipping corrupt %s entry: %s", what, exc)
    return decoded


def decode_metric(raw: dict[str, Any]) -> UserMetric:
    return UserMetric(
        metric_id=str(raw["metric_id"]),
        category=str(raw.get("category", "")),
        name=str(raw.get("name", "")),
        current_value=_float(raw.get("current_value"), 0.0),
        target=str(raw.get("target", "")),
        trend=parse_enum(MetricTrend, raw.get("trend"), MetricTrend.STABLE),
        last_updated=parse_datetime(raw.get("last_updated")) or utcnow(),
    )


def decode_energy_pattern(items: Any) -> list[EnergyReading]:
    """Normalize a persisted energy table to exactly one entry per hour."""
    table = {entry.hour: entry for entry in default_energy_pattern()}
    if isinstance(items, list):
        for raw in items:
            if not isinstance(raw, dict):
                continue
            hour = _int(raw.get("hour"), -1)
            if hour not in table:
                continue
            confidence = min(1.0, max(0.0, _float(raw.get("confidence"), table[hour].confidence)))
            table[hour] = EnergyReading(
                hour=hour,
                level=parse_enum(EnergyLevel, raw.get("level"), table[hour].level),
                confidence=confidence,
            )
    return [table[hour] for hour in range(24)]


def decode_profile(raw: Any) -> ProductivityProfile:
    if not isinstance(raw, dict):
        return ProductivityProfile()
    return ProductivityProfile(
        current_stage=parse_enum(Stage, raw.get("current_stage"), Stage.FOUNDATION),
        week_in_stage=max(1, _int(raw.get("week_in_stage"), 1)),
        completed_principles=set(_str_list(raw.get("completed_principles"))),
        current_metrics=_decode_list(raw.get("current_metrics"), decode_metric, "metric"),
        last_assessment=parse_datetime(raw.get("last_assessment")),
        well_being_score=_score(raw.get("well_being_score"), DEFAULT_WELL_BEING),
        system_health_score=_score(raw.get("system_health_score"), DEFAULT_SYSTEM_HEALTH),
        energy_pattern=decode_energy_pattern(raw.get("energy_pattern")),
    )


def decode_insight(raw: dict[str, Any]) -> Insight:
    return Insight(
        id=str(raw["id"]),
        type=parse_enum(InsightType, raw.get("type"), InsightType.SUGGESTION),
        principle=str(raw.get("principle", "")),
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        priority=parse_enum(Priority, raw.get("priority"), Priority.MEDIUM),
        timestamp=parse_datetime(raw.get("timestamp")) or utcnow(),
        action_items=_str_list(raw.get("action_items")),
    )


def decode_reminder(raw: dict[str, Any]) -> Reminder:
    scheduled_for = parse_datetime(raw.get("scheduled_for"))
    if scheduled_for is None:
        raise ValueError("reminder without a usable scheduled_for")
    return Reminder(
        id=str(raw["id"]),
        type=parse_enum(ReminderType, raw.get("type"), ReminderType.REFLECTION),
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        scheduled_for=scheduled_for,
        priority=parse_enum(Priority, raw.get("priority"), Priority.MEDIUM),
        completed=bool(raw.get("completed", False)),
    )


def decode_assessment(raw: dict[str, Any]) -> Assessment:
    date = parse_datetime(raw.get("date"))
    if date is None:
        raise ValueError("assessment without a usable date")
    return Assessment(
        date=date,
        stage=parse_enum(Stage, raw.get("stage"), Stage.FOUNDATION),
        completion_percentage=_float(raw.get("completion_percentage"), 0.0),
        strengths=tuple(_str_list(raw.get("strengths"))),
        improvements=tuple(_str_list(raw.get("improvements"))),
        next_steps=tuple(_str_list(raw.get("next_steps"))),
        metrics=tuple(_decode_list(raw.get("metrics"), decode_metric, "metric")),
    )


def decode_recovery(raw: Any) -> RecoveryProgress | None:
    if not isinstance(raw, dict):
        return None
    level = _int(raw.get("level"), 0)
    if level <= 0:
        return None
    return RecoveryProgress(
        level=level,
        start_time=parse_datetime(raw.get("start_time")) or utcnow(),
        estimated_duration=_int(raw.get("estimated_duration"), 0),
        completed_steps=_str_list(raw.get("completed_steps")),
        remaining_steps=_str_list(raw.get("remaining_steps")),
        current_step=str(raw.get("current_step", "")),
    )


def decode_preferences(raw: Any) -> Preferences:
    defaults = Preferences()
    if not isinstance(raw, dict):
        return defaults
    review_time = raw.get("preferred_review_time")
    return Preferences(
        preferred_review_time=(
            review_time if isinstance(review_time, str) else defaults.preferred_review_time
        ),
        preferred_break_interval=_int(
            raw.get("preferred_break_interval"), defaults.preferred_break_interval
        ),
        focus_session_length=_int(raw.get("focus_session_length"), defaults.focus_session_length),
        well_being_check_frequency=parse_enum(
            CheckFrequency, raw.get("well_being_check_frequency"), defaults.well_being_check_frequency
        ),
        guidance_style=parse_enum(GuidanceStyle, raw.get("guidance_style"), defaults.guidance_style),
        celebration_style=parse_enum(
            CelebrationStyle, raw.get("celebration_style"), defaults.celebration_style
        ),
    )


def decode_behavior_pattern(raw: dict[str, Any]) -> BehaviorPattern:
    suggested = raw.get("suggested_action")
    return BehaviorPattern(
        pattern=str(raw["pattern"]),
        frequency=_int(raw.get("frequency"), 0),
        impact=parse_enum(PatternImpact, raw.get("impact"), PatternImpact.NEUTRAL),
        confidence=min(1.0, max(0.0, _float(raw.get("confidence"), 0.0))),
        suggested_action=str(suggested) if suggested is not None else None,
    )


# =============================================================================
# Encode / decode / migrate
# =============================================================================


def encode_state(state: EngineState) -> dict[str, Any]:
    """Build the current-schema record, truncating bounded histories."""
    return {
        "schema_version": SCHEMA_VERSION,
        "profile": state.profile.to_dict(),
        "ledger": {
            "insights": [i.to_dict() for i in list(state.insights)[:INSIGHT_CAP]],
            "reminders": [r.to_dict() for r in state.reminders],
        },
        "assessments": [a.to_dict() for a in list(state.assessments)[:ASSESSMENT_HISTORY_CAP]],
        "recovery_progress": (
            state.recovery_progress.to_dict() if state.recovery_progress else None
        ),
        "is_proactive_mode": state.is_proactive_mode,
        "last_proactive_check": (
            state.last_proactive_check.isoformat() if state.last_proactive_check else None
        ),
        "preferences": state.preferences.to_dict(),
        "behavior_patterns": [
            p.to_dict() for p in list(state.behavior_patterns)[:PERSISTED_BEHAVIOR_PATTERN_WINDOW]
        ],
    }


def decode_state(record: dict[str, Any], insight_cap: int = INSIGHT_CAP) -> EngineState:
    """Build an EngineState from a current-schema record, field by field."""
    ledger = record.get("ledger")
    if not isinstance(ledger, dict):
        ledger = {}
    proactive = record.get("is_proactive_mode", True)
    return EngineState(
        profile=decode_profile(record.get("profile")),
        insights=deque(
            _decode_list(ledger.get("insights"), decode_insight, "insight"),
            maxlen=insight_cap,
        ),
        reminders=_decode_list(ledger.get("reminders"), decode_reminder, "reminder"),
        assessments=deque(
            _decode_list(record.get("assessments"), decode_assessment, "assessment"),
            maxlen=ASSESSMENT_HISTORY_CAP,
        ),
        recovery_progress=decode_recovery(record.get("recovery_progress")),
        is_proactive_mode=proactive if isinstance(proactive, bool) else True,
        last_proactive_check=parse_datetime(record.get("last_proactive_check")),
        preferences=decode_preferences(record.get("preferences")),
        behavior_patterns=deque(
            _decode_list(record.get("behavior_patterns"), decode_behavior_pattern, "pattern"),
            maxlen=BEHAVIOR_PATTERN_CAP,
        ),
    )


# camelCase → snake_case for every field name the browser client used
_LEGACY_FIELD_NAMES: dict[str, str] = {
    "currentStage": "current_stage",
    "weekInStage": "week_in_stage",
    "completedPrinciples": "completed_principles",
    "currentMetrics": "current_metrics",
    "lastAssessment": "last_assessment",
    "wellBeingScore": "well_being_score",
    "systemHealthScore": "system_health_score",
    "energyPattern": "energy_pattern",
    "metricId": "metric_id",
    "currentValue": "current_value",
    "lastUpdated": "last_updated",
    "actionItems": "action_items",
    "scheduledFor": "scheduled_for",
    "completionPercentage": "completion_percentage",
    "nextSteps": "next_steps",
    "startTime": "start_time",
    "estimatedDuration": "estimated_duration",
    "completedSteps": "completed_steps",
    "remainingSteps": "remaining_steps",
    "currentStep": "current_step",
    "preferredReviewTime": "preferred_review_time",
    "preferredBreakInterval": "preferred_break_interval",
    "focusSessionLength": "focus_session_length",
    "wellBeingCheckFrequency": "well_being_check_frequency",
    "guidanceStyle": "guidance_style",
    "celebrationStyle": "celebration_style",
    "suggestedAction": "suggested_action",
}


def _snake_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_LEGACY_FIELD_NAMES.get(k, k): _snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_snake_keys(item) for item in value]
    return value


def _migrate_v0(record: dict[str, Any]) -> dict[str, Any]:
    """Legacy browser record → schema version 1."""
    recovery = record.get("recoveryProgress")
    if record.get("isInRecoveryMode") is False:
        recovery = None
    return {
        "schema_version": 1,
        "profile": _snake_keys(record.get("productivityProfile")),
        "ledger": {
            "insights": _snake_keys(record.get("activeInsights") or []),
            "reminders": _snake_keys(record.get("scheduledReminders") or []),
        },
        "assessments": _snake_keys(record.get("recentAssessments") or []),
        "recovery_progress": _snake_keys(recovery),
        "is_proactive_mode": record.get("isProactiveMode", True),
        "last_proactive_check": record.get("lastProactiveCheck"),
        "preferences": _snake_keys(record.get("userPreferences")),
        "behavior_patterns": _snake_keys(record.get("behaviorPatterns") or []),
    }


_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0,
}


def migrate(record: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a record to the current schema version.

    Records without a schema_version are the legacy (version 0) format.

    Raises:
        MigrationError: If the version is unknown or newer than supported
    """
    version = record.get("schema_version", 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise MigrationError(f"Invalid schema_version {version!r}")
    if version > SCHEMA_VERSION:
        raise MigrationError(
            f"Record schema_version {version} is newer than supported {SCHEMA_VERSION}"
        )
    while version < SCHEMA_VERSION:
        step = _MIGRATIONS.get(version)
        if step is None:
            raise MigrationError(f"No migration from schema_version {version}")
        record = step(record)
        version = record["schema_version"]
        logger.info("Migrated engine record to schema_version %s", version)
    return record


def parse_record(raw: str) -> dict[str, Any]:
    """Decode the stored JSON string.

    Raises:
        SerializationError: If the payload is not a JSON object
    """
    try:
        record = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Engine record is not valid JSON: {exc}") from exc
    if not isinstance(record, dict):
        raise SerializationError(f"Engine record is a {type(record).__name__}, expected object")
    return record


# =============================================================================
# Adapter
# =============================================================================


class PersistenceAdapter:
    """Load/save contract between LunaEngine and a key-value store.

    Args:
        store: Backend exposing get_sync/set_sync
        key: Key of the current-schema record
        legacy_keys: Keys read when ``key`` holds nothing (oldest format last)
        insight_cap: Window applied to loaded insights
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = STATE_KEY,
        legacy_keys: Iterable[str] = (LEGACY_STATE_KEY,),
        insight_cap: int = INSIGHT_CAP,
    ) -> None:
        self._store = store
        self._key = key
        self._legacy_keys = tuple(legacy_keys)
        self._insight_cap = insight_cap

    @property
    def key(self) -> str:
        return self._key

    def save(self, state: EngineState) -> bool:
        """Write the full snapshot. Never raises.

        Returns:
            True if the store accepted the record
        """
        try:
            ok = self._store.set_sync(self._key, encode_state(state))
        except Exception as exc:  # Intentional catch-all: a failing backend must not break engine calls
            logger.warning("Failed to save engine state under %s: %s", self._key, exc)
            record_persistence("save", "error")
            return False
        if not ok:
            logger.warning("Store rejected engine state under %s", self._key)
            record_persistence("save", "error")
            return False
        record_persistence("save", "ok")
        return True

    def load(self) -> EngineState | None:
        """Read, migrate and decode the persisted record. Never raises.

        Returns:
            The decoded state, or None when nothing usable is stored
        """
        try:
            raw = self._read()
        except Exception as exc:  # Intentional catch-all: a failing backend means "use defaults"
            logger.warning("Failed to read engine state: %s", exc)
            record_persistence("load", "error")
            return None
        if raw is None:
            record_persistence("load", "missing")
            return None

        try:
            state = decode_state(migrate(parse_record(raw)), self._insight_cap)
        except SerializationError as exc:
            logger.warning("Discarding unusable engine record: %s", exc)
            record_persistence("load", "corrupt")
            return None
        record_persistence("load", "ok")
        return state

    def _read(self) -> str | None:
        raw = self._store.get_sync(self._key)
        if raw is not None:
            return raw
        for legacy_key in self._legacy_keys:
            raw = self._store.get_sync(legacy_key)
            if raw is not None:
                logger.info("Loading legacy engine record from %s", legacy_key)
                return raw
        return None
