"""
Luna Agent - adaptive guidance and recovery.

- LunaEngine: facade over profile, insights, recovery and proactive guidance
- derive_assessment: turns a profile snapshot into a progress assessment
"""

from __future__ import annotations

from .engine import LunaEngine, derive_assessment

__all__ = [
    "LunaEngine",
    "derive_assessment",
]
