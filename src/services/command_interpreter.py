"""
Command interpreter port for the Luna engine.

Free-text understanding is an external collaborator: anything that turns
"help me do a brain dump" into a list of suggested commands. The engine
only depends on the CommandInterpreter protocol and guards every call with
a circuit breaker and a timeout, so a slow or failing interpreter degrades
to "no suggestions" instead of an error.

CatalogInterpreter is the built-in implementation: keyword matching
against COMMAND_CATALOG, good enough for hosts without an NLU backend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from src.config.framework import COMMAND_CATALOG
from src.lib.circuit_breaker import CircuitBreaker
from src.lib.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

DEFAULT_INTERPRET_TIMEOUT = 5.0


@runtime_checkable
class CommandInterpreter(Protocol):
    """Turns free text into suggested commands.

    ``context`` is an optional tag naming where the user is (e.g. "focus"),
    matched against command catalog categories.
    """

    async def interpret(self, text: str, context: str | None = None) -> list[str]: ...


def contextual_suggestions(
    context: str,
    catalog: Mapping[str, tuple[str, ...]] = COMMAND_CATALOG,
) -> list[str]:
    """Commands of the first catalog category whose name contains ``context``.

    Matching is case-insensitive. An empty context or no match yields [].
    """
    needle = context.strip().lower()
    if not needle:
        return []
    for category, commands in catalog.items():
        if needle in category.lower():
            return list(commands)
    return []


class CatalogInterpreter:
    """Keyword matcher over the command catalog."""

    def __init__(self, catalog: Mapping[str, tuple[str, ...]] = COMMAND_CATALOG) -> None:
        self._catalog = catalog

    async def interpret(self, text: str, context: str | None = None) -> list[str]:
        words = {w.strip(".,!?").lower() for w in text.split() if len(w) > 3}
        if not words:
            return contextual_suggestions(context, self._catalog) if context else []
        matches: list[str] = []
        for commands in self._catalog.values():
            for command in commands:
                if words & {w.strip(".,!?[]").lower() for w in command.split()}:
                    matches.append(command)
        if not matches and context:
            return contextual_suggestions(context, self._catalog)
        return matches


class GuardedInterpreter:
    """Wraps a CommandInterpreter with a circuit breaker and a timeout.

    Args:
        interpreter: The external collaborator
        breaker: Circuit breaker shared across calls
        timeout: Seconds before a call counts as failed
    """

    def __init__(
        self,
        interpreter: CommandInterpreter,
        breaker: CircuitBreaker | None = None,
        timeout: float = DEFAULT_INTERPRET_TIMEOUT,
    ) -> None:
        self._interpreter = interpreter
        self._breaker = breaker or CircuitBreaker(name="command_interpreter")
        self._timeout = timeout

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def interpret(self, text: str, context: str | None = None) -> list[str]:
        """Interpret text; any failure yields an empty list."""
        try:
            async with self._breaker:
                result = await asyncio.wait_for(
                    self._interpreter.interpret(text, context), timeout=self._timeout
                )
        except CircuitOpenError as exc:
            logger.info("Skipping command interpretation: %s", exc)
            return []
        except Exception as exc:  # Intentional catch-all: interpreter failures degrade to no suggestions
            logger.warning("Command interpreter failed: %s", exc)
            return []
        return [str(item) for item in result or []]
