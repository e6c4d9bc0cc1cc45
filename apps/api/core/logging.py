"""Logging for the statement import API.

Events are named ``<area>.<event>`` with keyword context, e.g.
``logger.warning("statement_transform.retry", attempt=1, status=503)``.
Each request binds its ``request_id`` and path through contextvars, so
import and upstream events can be traced back to the upload that caused
them. Statement PDFs are often password protected; password and token
fields are masked before any line is rendered.
"""

import logging
import sys

import structlog

REDACTED = "***"

SECRET_KEYS = frozenset({"password", "passwords", "authorization", "token", "access_token"})

# Libraries that log every outbound request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "hpack")


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor masking secret values, including one level of nested dicts."""
    for key, value in event_dict.items():
        if key.lower() in SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                inner: REDACTED if str(inner).lower() in SECRET_KEYS else inner_value
                for inner, inner_value in value.items()
            }
    return event_dict


def build_processors(json_output: bool) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        # Tracebacks become a string field so each event stays one JSON line
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog through stdlib logging on stdout.

    ``json_output`` is on in production; local runs get the console renderer.
    """
    structlog.configure(
        processors=build_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(request_id: str, **context) -> None:
    """Replace the request-scoped fields attached to downstream log lines."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)
