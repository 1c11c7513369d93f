"""Structured logging configuration."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from pythonjsonlogger import jsonlogger

from ncc_monitor.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds timestamp, level and source location."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.utcnow().isoformat() + 'Z'
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['source'] = f"{record.filename}:{record.lineno}"

        if record.funcName:
            log_record['function'] = record.funcName

        # The console prefix is redundant next to the structured fields
        log_record.pop('context', None)


def setup_logging(base_dir: str | Path | None = None):
    """Configure logging for the application.

    Args:
        base_dir: Optional base directory to place the logs/ folder in.
                  If omitted, uses the current working directory.
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / "logs"
    logs_dir.mkdir(exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    # Console handler (human-readable)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(context)s%(message)s"
        )
    )
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    # File handler (JSON)
    json_formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    json_handler = logging.FileHandler(logs_dir / "app.log")
    json_handler.setLevel(logging.DEBUG)
    json_handler.setFormatter(json_formatter)
    root_logger.addHandler(json_handler)

    error_handler = logging.FileHandler(logs_dir / "error.log")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(json_formatter)
    root_logger.addHandler(error_handler)

    return root_logger


class ContextFilter(logging.Filter):
    """Gives records logged outside an adapter an empty console context."""

    def filter(self, record):
        if not hasattr(record, "context"):
            record.context = ""
        return True


class LoggerAdapter(logging.LoggerAdapter):
    """
    Attaches scan context (serial_id, owner_id, search_type) to each record.

    The context becomes top-level fields in the JSON log and a
    ``[serial_id=3 owner_id=1]`` prefix on console lines.
    """

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        context = format_context(self.extra)
        extra["context"] = f"[{context}] " if context else ""
        return msg, kwargs

    def bind(self, **context) -> "LoggerAdapter":
        """Return a child adapter with extra context fields."""
        return LoggerAdapter(self.logger, {**self.extra, **context})


def format_context(context: dict) -> str:
    return " ".join(f"{key}={value}" for key, value in context.items() if value is not None)


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger with optional context fields.

    Args:
        name: Logger name (usually __name__)
        **context: Additional context fields (e.g., serial_id=3, owner_id=1)

    Returns:
        LoggerAdapter with context
    """
    logger = logging.getLogger(name)
    return LoggerAdapter(logger, context)
