"""structlog setup for cardbridge.

Every component logs through a logger bound with ``component=`` (carddav,
discovery, transport, trust, submission). Per-request DAV traces are
emitted at debug, so ``logging.level: debug`` in config.yaml is the switch
for wire-level troubleshooting.

When stderr is a terminal the output is structlog's console renderer.
Otherwise (form backends, cron jobs) each event is one JSON line
with ``timestamp, level, component, event`` first.
"""

import logging
import sys

import structlog


_PRIORITY_KEYS = ("timestamp", "level", "component", "event")
_SECRET_KEYS = frozenset({"password", "authorization", "auth"})
_MASK = "***"


def reorder_keys(
    logger: object, method_name: str, event_dict: dict[str, object]
) -> dict[str, object]:
    """Move the priority keys to the front, keeping every other key in order."""
    ordered = {key: event_dict[key] for key in _PRIORITY_KEYS if key in event_dict}
    ordered.update(
        (key, value) for key, value in event_dict.items() if key not in ordered
    )
    return ordered


def mask_secrets(
    logger: object, method_name: str, event_dict: dict[str, object]
) -> dict[str, object]:
    """Replace credential fields (password, Authorization) with a fixed mask."""
    for key in event_dict:
        if key.lower() in _SECRET_KEYS:
            event_dict[key] = _MASK
    return event_dict


def _processors(for_terminal: bool) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_secrets,
        structlog.processors.format_exc_info,
    ]
    if for_terminal:
        chain.append(structlog.dev.ConsoleRenderer())
    else:
        chain += [
            structlog.processors.dict_tracebacks,
            reorder_keys,
            structlog.processors.JSONRenderer(),
        ]
    return chain


def configure_logging(log_level: str = "info") -> None:
    """Route structlog to stderr, filtered at ``log_level``.

    Args:
        log_level: Level name from ``logging.level`` in config.yaml. Unknown
                   names fall back to info.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    structlog.configure(
        processors=_processors(sys.stderr.isatty()),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(**initial_context: object) -> structlog.stdlib.BoundLogger:
    """Return a logger with ``initial_context`` (usually ``component=``) bound."""
    return structlog.get_logger(**initial_context)
