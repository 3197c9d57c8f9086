"""Structured logging configuration with structlog."""

import logging

import structlog

from promominer.config import Settings

# Chatty third-party loggers kept at WARNING unless debugging
_QUIET_LOGGERS = ("sqlalchemy.engine", "arq.worker", "httpx")


def _service_fields(environment: str) -> structlog.types.Processor:
    """Stamp every event with the service name and deployment environment."""

    def processor(_logger: object, _method: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
        event_dict.setdefault("service", "promominer")
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output.

    Called by the API on startup and by the auto-collect worker.
    """
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _service_fields(settings.environment),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    if not settings.debug:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))
