"""
Proactive guidance loop for the Luna engine.

- rules: independent predicates over a RuleContext snapshot
- scheduler: debounced, periodic evaluation of the rule set
"""

from src.services.guidance.rules import (
    DEFAULT_RULES,
    GuidanceRule,
    RuleContext,
    RuleOutcome,
    next_review_time,
)
from src.services.guidance.scheduler import EvaluationResult, GuidanceScheduler

__all__ = [
    "DEFAULT_RULES",
    "EvaluationResult",
    "GuidanceRule",
    "GuidanceScheduler",
    "RuleContext",
    "RuleOutcome",
    "next_review_time",
]
