"""Structured JSON logging configuration."""
import logging
import sys
from pythonjsonlogger import jsonlogger
from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(request_id)s %(message)s"


class RequestIdFilter(logging.Filter):
    """Attach the current request id (or '-') to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        from app.middleware.request_id import request_id_ctx

        record.request_id = request_id_ctx.get()
        return True


def setup_logging() -> None:
    """Configure JSON structured logging for production, human-readable for dev."""
    if getattr(settings, 'APP_ENV', 'development') == "production":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            LOG_FORMAT,
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    logging.root.handlers = [handler]
    logging.root.setLevel(logging.INFO)
