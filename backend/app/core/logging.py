"""Structured logging setup.

structlog renders every entry, including records emitted through the stdlib
``logging`` module by uvicorn, SQLAlchemy and httpx:

- JSON lines in production
- colored ConsoleRenderer when ``debug`` is on
- ``correlation_id`` taken from the asgi-correlation-id context var
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

# Libraries that log every request/statement at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


def add_correlation_id(logger, method, event_dict):
    """Attach the current request's correlation id, if any."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Wire structlog and the stdlib root logger to the same renderer.

    Must run before the first ``structlog.get_logger()`` call is bound,
    because ``cache_logger_on_first_use`` freezes the processor chain.
    """
    pre_chain = _pre_chain()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    formatter = {
        "()": structlog.stdlib.ProcessorFormatter,
        "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        "foreign_pre_chain": pre_chain,
    }
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"structured": formatter},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"handlers": ["stdout"], "level": log_level},
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        }
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_from_settings(settings) -> None:
    """Debug mode logs at DEBUG through the console renderer; otherwise INFO as JSON."""
    configure_structlog(
        log_level="DEBUG" if settings.debug else "INFO",
        json_logs=not settings.debug,
    )
