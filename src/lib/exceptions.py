"""
Custom exception hierarchy for the Luna guidance engine.

Provides structured exception types for the engine subsystems:
- Configuration loading
- Persistence (load/save, schema migration)
- Rule evaluation and recovery state transitions
- External collaborators (command interpreter)

All exceptions inherit from LunaEngineError, enabling a catch-all for
engine-specific errors while keeping the ability to catch specific types.
Most of these never escape the engine: the facade converts them into
logged, recoverable outcomes.
"""

from __future__ import annotations


class LunaEngineError(Exception):
    """Base exception for all Luna guidance engine errors."""


class ConfigurationError(LunaEngineError):
    """Invalid config values or malformed environment variables."""


class PersistenceError(LunaEngineError):
    """Key-value store unavailable or a load/save round trip failed."""


class SerializationError(PersistenceError):
    """JSON encode/decode failures for the persisted engine record."""


class MigrationError(SerializationError):
    """A persisted record has a schema version the engine cannot migrate."""


class RuleEvaluationError(LunaEngineError):
    """A guidance rule raised while evaluating profile state."""

    def __init__(self, rule_name: str, cause: BaseException) -> None:
        self.rule_name = rule_name
        self.cause = cause
        super().__init__(f"Rule '{rule_name}' failed: {cause}")


class StateError(LunaEngineError):
    """Invalid state transitions, missing required state."""


class ExternalServiceError(LunaEngineError):
    """External collaborator failures (command interpreter, Redis)."""


class CircuitOpenError(ExternalServiceError):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, retry_after: float) -> None:
        self.name = name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{name}' is open. Retry after {retry_after:.1f}s."
        )
