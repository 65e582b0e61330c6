"""
Agents for the Luna guidance engine.

This package contains the engine facades host applications talk to:
- Luna: adaptive guidance and recovery engine
"""

from __future__ import annotations

__all__: list[str] = [
    "luna",
]
