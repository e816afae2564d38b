"""
Structured Logging Configuration.

structlog setup shared by the API and the link engine. Every event carries
the service name, the request correlation ID and whatever repair scope
(source item, field, target) is active through ``LogContext``.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_scope_var: ContextVar[dict[str, Any]] = ContextVar("log_scope", default={})

REDACTED = "***REDACTED***"
_SECRET_KEYS = ("password", "secret", "token_value", "authorization", "credential")


class LogContext:
    """
    Bind fields to every log event emitted inside the block.

    Nested contexts merge; the outer scope is restored on exit.

    Usage:
        with LogContext(source_item_id="{...}", action="relink"):
            logger.info("Rewriting field")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = _scope_var.set({**_scope_var.get(), **self._fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._token is not None:
            _scope_var.reset(self._token)
            self._token = None
        return False


def current_log_context() -> dict[str, Any]:
    return dict(_scope_var.get())


def add_request_scope(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach the correlation ID and the active LogContext fields."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    for key, value in _scope_var.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Blank out values whose key looks like a credential (e.g. the Neo4j password)."""
    for key, value in event_dict.items():
        if isinstance(value, str) and any(secret in key.lower() for secret in _SECRET_KEYS):
            event_dict[key] = REDACTED
    return event_dict


def _service_processor(service_name: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["service"] = service_name
        return event_dict

    return add_service


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
    service_name: str = "content-link-repair",
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: "json" for deployments, "console" for a terminal
        service_name: Value of the ``service`` field on every event
    """
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_processor(service_name),
        add_request_scope,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level.upper()))

    # The driver logs every routed query at INFO
    logging.getLogger("neo4j").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)
