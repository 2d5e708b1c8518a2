import logging
import os
from contextvars import ContextVar
from logging.config import dictConfig

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(request_id)s | %(name)s | %(message)s"
JSON_FORMAT = (
    '{"time":"%(asctime)s","level":"%(levelname)s","request_id":"%(request_id)s",'
    '"logger":"%(name)s","message":"%(message)s"}'
)

# Set by the HTTP middleware for the duration of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamps every record with the id of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging(level: str | None = None, formatter: str | None = None):
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    formatter = formatter or os.getenv("LOG_FORMAT", "default")
    if formatter not in ("default", "json"):
        formatter = "default"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_id": {"()": RequestIdFilter},
            },
            "formatters": {
                "default": {"format": LOG_FORMAT},
                "json": {"format": JSON_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                    "filters": ["request_id"],
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            # Request lines come from our own middleware
            "loggers": {
                "uvicorn.access": {"level": "WARNING"},
            },
        }
    )
