"""structlog setup for the arena engine.

Events are snake_case with key/value context. Exchange adapters bind the
agent name once per client, so every line from a fan-out can be traced back
to the account that produced it.
"""

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

# Keys that carry signing material or credentials and must never be rendered.
REDACTED_KEYS = frozenset(
    {"signature", "api_key", "api_secret", "private_key", "secret", "X-MBX-APIKEY"}
)


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace credential values in an event with a fixed marker."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    params = event_dict.get("params")
    if isinstance(params, dict) and REDACTED_KEYS.intersection(params):
        event_dict["params"] = {
            k: ("***" if k in REDACTED_KEYS else v) for k, v in params.items()
        }
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog and stdlib logging through one handler.

    ``log_format`` is ``"json"`` for machine-readable output, anything else
    renders for a terminal.
    """
    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # aiohttp logs every connection at INFO; exchange calls are already logged
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
