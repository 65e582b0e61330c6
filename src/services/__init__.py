"""
Services for the Luna guidance engine.

Services:
    - ProfileStore: productivity profile, scores and energy table
    - InsightLedger: bounded insight window and reminder list
    - RecoveryWorkflow: recovery session state machine
    - GuidanceScheduler: periodic, debounced rule evaluation
    - PersistenceAdapter: versioned load/save of the engine record
    - RedisService: Redis-backed key-value store
    - GuardedInterpreter: circuit-broken command interpreter calls
"""

from .command_interpreter import (
    CatalogInterpreter,
    CommandInterpreter,
    GuardedInterpreter,
    contextual_suggestions,
)
from .guidance import EvaluationResult, GuidanceScheduler
from .insight_ledger import InsightLedger
from .persistence import InMemoryKeyValueStore, KeyValueStore, PersistenceAdapter
from .profile_store import ProfileStore
from .recovery import RecoveryState, RecoveryWorkflow
from .redis_service import RedisService, get_redis_service

__all__ = [
    # Profile and ledger
    "ProfileStore",
    "InsightLedger",
    # Recovery
    "RecoveryState",
    "RecoveryWorkflow",
    # Guidance
    "EvaluationResult",
    "GuidanceScheduler",
    # Persistence
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "PersistenceAdapter",
    "RedisService",
    "get_redis_service",
    # Commands
    "CatalogInterpreter",
    "CommandInterpreter",
    "GuardedInterpreter",
    "contextual_suggestions",
]
