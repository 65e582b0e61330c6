"""
Log output for the Luna guidance engine.

Engine modules never configure logging themselves: they log through
`logging.getLogger(__name__)` with %-style arguments. A host that wants
Luna's records rendered consistently calls setup_logging() once before
LunaEngine.init(); records from the engine and from structlog loggers then
share one handler on the root logger.

Every rendered record carries ``service="luna"`` so engine output can be
separated from the host's own logs. Tracebacks from a failed ticker cycle
(``logger.exception``) are rendered inline in both output modes.

Environment:
    LUNA_DEV_MODE=1   Console renderer instead of JSON lines
    LOG_LEVEL         Root level when no level argument is given (default INFO)
"""

import logging
import os
import sys
from typing import Any

import structlog

SERVICE_NAME = "luna"

# Third-party loggers that are chatty at INFO (redis logs every reconnect)
_QUIET_LOGGERS = ("redis", "asyncio")


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderers(dev_mode: bool) -> list[structlog.types.Processor]:
    if dev_mode:
        # ConsoleRenderer prints exc_info itself
        return [structlog.dev.ConsoleRenderer()]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def setup_logging(level: str | None = None) -> None:
    """Route stdlib and structlog records through one structlog formatter.

    Safe to call more than once; the root logger keeps a single handler.

    Args:
        level: Level name overriding LOG_LEVEL (e.g. "debug")
    """
    dev_mode = os.environ.get("LUNA_DEV_MODE") == "1"
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_renderers(dev_mode),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
