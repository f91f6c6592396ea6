"""Structured logging on top of structlog.

Events are named, not sentences:

    logger = get_logger(__name__)
    logger.info("conversation.created", conversation_id=str(conversation.id))

Request-scoped fields live in ContextVars and are merged into every event
by add_request_context: request_id, user_id, path, method and, while a chat
completion runs, conversation_id. A value passed at the call site is never
overwritten.

The API calls configure_logging() once at startup. The desktop client calls
configure_logging(json_format=False) and never sets request context.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)
conversation_id_var: ContextVar[str | None] = ContextVar("conversation_id", default=None)

# Event key -> context var, in the order keys are added
_CONTEXT_FIELDS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("path", path_var),
    ("method", method_var),
    ("conversation_id", conversation_id_var),
)

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: merge the non-empty context vars into the event."""
    for key, var in _CONTEXT_FIELDS:
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        json_format: JSON lines when True, the colored console renderer otherwise.
        level: Root log level.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Set the request id, plus any of user/path/method that are given."""
    request_id_var.set(request_id)
    for var, value in ((user_id_var, user_id), (path_var, path), (method_var, method)):
        if value is not None:
            var.set(value)


def set_conversation_id(conversation_id: str | None) -> None:
    """Tag subsequent log entries with the conversation being completed."""
    conversation_id_var.set(conversation_id)


def clear_request_context() -> None:
    for _, var in _CONTEXT_FIELDS:
        var.set(None)


def get_request_id() -> str | None:
    return request_id_var.get()
