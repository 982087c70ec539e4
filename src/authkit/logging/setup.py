# Assumptions:
# - The host service decides whether logs are JSON or console formatted
# - Correlation IDs are set by the host per request and forwarded on outbound calls
# - Credentials and tokens must never reach a log sink

import contextvars
import logging
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog
from pythonjsonlogger import jsonlogger
from structlog.stdlib import LoggerFactory

from ..config.settings import Settings, get_settings

REDACTED = "[REDACTED]"

# Event keys whose values are secrets or bearer material
SENSITIVE_KEYS = frozenset(
    [
        "access_token",
        "assertion",
        "authorization",
        "client_secret",
        "id_token",
        "private_key",
        "refresh_token",
        "session_cookie",
        "signature",
        "token",
    ]
)

# Chatty transport loggers that would otherwise log every request URL
TRANSPORT_LOGGERS = ("httpx", "httpcore")

_correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("correlation_id", default=None)


def setup_logging(
    service_name: str | None = None,
    level: str | None = None,
    format_type: str | None = None,  # "json" or "console"
    settings: Settings | None = None,
) -> None:
    """
    Configure structlog and stdlib logging for the host service

    Arguments left as None fall back to Settings (SERVICE_NAME, LOG_LEVEL,
    LOG_FORMAT). JSON output is meant for production, console output for
    local development.
    """
    settings = settings or get_settings()
    service_name = service_name or settings.service_name
    level = (level or settings.log_level).upper()
    format_type = format_type or settings.log_format
    log_level = getattr(logging, level, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    transport_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if format_type == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_context(service_name),
            add_correlation_context(),
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # httpx and opentelemetry log through stdlib, not structlog
    if format_type == "json":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )
        logging.getLogger().handlers = [handler]


def add_service_context(service_name: str):
    """Tag every event with the host service name"""

    def processor(logger, method_name, event_dict):
        event_dict["service"] = service_name
        return event_dict

    return processor


def add_correlation_context():
    def processor(logger, method_name, event_dict):
        correlation_id = get_correlation_id()
        if correlation_id:
            event_dict["correlation_id"] = correlation_id
        return event_dict

    return processor


def redact_secrets(logger, method_name, event_dict):
    """Replace values of sensitive keys, at the top level and one mapping deep"""
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                inner: REDACTED if str(inner).lower() in SENSITIVE_KEYS else inner_value
                for inner, inner_value in value.items()
            }
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str | None) -> Iterator[None]:
    """Set the correlation ID for the duration of a block, then restore the previous one"""
    token = _correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id_var.reset(token)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance"""
    return structlog.get_logger(name)
