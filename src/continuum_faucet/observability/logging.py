"""Structured logging for the faucet.

Faucet modules log through the standard library (``logging.getLogger`` with
``extra=`` fields). ``configure_logging`` routes those records through the
same structlog processor chain as native structlog loggers, so every line
gets the request ID, the ``extra`` fields and secret redaction, rendered as
JSON or console text.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

# Set per HTTP request; distribution tasks spawned by the handler inherit it
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Matched against exact field names; "token" is a token name, not a secret
REDACTED_FIELDS = frozenset(
    {
        "private_key",
        "private_key_file",
        "secret",
        "password",
        "admin_token",
        "authorization",
        "database_url",
        "raw_transaction",
    }
)

REDACTED = "[REDACTED]"

HANDLER_NAME = "continuum_faucet"


def _add_request_id(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def _redact_sensitive(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    for key in event_dict:
        if key.lower() in REDACTED_FIELDS:
            event_dict[key] = REDACTED
    return event_dict


def _renderer(log_format: str) -> structlog.typing.Processor:
    if log_format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Configure stdlib and structlog logging for the service.

    Safe to call more than once; the handler installed by a previous call is
    replaced.

    Parameters
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    log_format : str
        ``json`` for one JSON object per line, anything else for console text.

    Raises
    ------
    ValueError
        If the level name is unknown.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(
            f"Invalid log level: {level!r}. "
            "Valid levels are: DEBUG, INFO, WARNING, ERROR, CRITICAL."
        )

    shared_processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
        _add_request_id,
        _redact_sensitive,
    ]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            _renderer(log_format),
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a native structlog logger bound to the configured chain."""
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def clear_request_id() -> None:
    request_id_var.set(None)
