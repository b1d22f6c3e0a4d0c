"""structlog setup.

Every record, ours or a library's (uvicorn, SQLAlchemy, alembic), goes
through the same processor chain and comes out as one JSON object per line,
or as a colored line when LOG_FORMAT=console. The request ID bound by
``RequestIDMiddleware`` is merged into each event from contextvars.
"""

import logging
import logging.config
import sys
from typing import Any, Literal

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from structlog.stdlib import BoundLogger

# The pipeline logs every request itself
QUIET_LOGGERS = ("uvicorn.access",)


class LoggingSettings(BaseSettings):
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", alias="LOG_FORMAT")
    # Off in tests so structlog.testing.capture_logs sees every logger
    log_cache: bool = Field(default=True, alias="LOG_CACHE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Route structlog and stdlib logging to stdout. Safe to call more than once."""
    settings = settings or LoggingSettings()
    shared = _shared_processors()

    renderer: Any
    if settings.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=settings.log_cache,
    )

    loggers: dict[str, Any] = {
        "": {"handlers": ["stdout"], "level": settings.log_level},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processor": renderer,
                    "foreign_pre_chain": shared,
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "structlog",
                    "stream": sys.stdout,
                },
            },
            "loggers": loggers,
        }
    )


def get_logger(name: str) -> BoundLogger:
    """Module logger; call as ``logger.info("url_added", name=..., user=...)``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
