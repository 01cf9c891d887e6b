"""
Logging configuration for npm-license-report.

Every component logs through a named event logger so that output can be
rendered either for humans (rich) or as JSON lines for CI log collectors.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "npm_license_report"

VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "verbose": VERBOSE,
    "debug": logging.DEBUG,
}

_RESERVED_RECORD_KEYS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": getattr(record, "component", ROOT_LOGGER_NAME),
            "message": record.getMessage(),
        }

        # Add extra fields from record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Event-style logger: one event type plus keyword fields per call."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
        self.component = name

    def _log(self, level: int, event_type: str, message: str = "", **kwargs) -> None:
        """Internal logging method."""
        if not self.logger.isEnabledFor(level):
            return

        fields = {
            (f"{key}_" if key in _RESERVED_RECORD_KEYS else key): value
            for key, value in kwargs.items()
        }
        text = message or event_type
        if fields:
            text += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        self.logger.log(
            level,
            text,
            extra={"event_type": event_type, "component": self.component, **fields},
        )

    def info(self, event_type: str, message: str = "", **kwargs) -> None:
        """Log info level event."""
        self._log(logging.INFO, event_type, message, **kwargs)

    def verbose(self, event_type: str, message: str = "", **kwargs) -> None:
        """Log verbose level event."""
        self._log(VERBOSE, event_type, message, **kwargs)

    def warning(self, event_type: str, message: str = "", **kwargs) -> None:
        """Log warning level event."""
        self._log(logging.WARNING, event_type, message, **kwargs)

    def error(self, event_type: str, message: str = "", **kwargs) -> None:
        """Log error level event."""
        self._log(logging.ERROR, event_type, message, **kwargs)

    def debug(self, event_type: str, message: str = "", **kwargs) -> None:
        """Log debug level event."""
        self._log(logging.DEBUG, event_type, message, **kwargs)


# Global logger instances
_resolver_logger = EventLogger("resolver")
_license_logger = EventLogger("licenses")
_registry_logger = EventLogger("registry")
_report_logger = EventLogger("report")


def get_resolver_logger() -> EventLogger:
    """Get manifest and dependency set logger."""
    return _resolver_logger


def get_license_logger() -> EventLogger:
    """Get license source chain logger."""
    return _license_logger


def get_registry_logger() -> EventLogger:
    """Get HTTP registry operations logger."""
    return _registry_logger


def get_report_logger() -> EventLogger:
    """Get report assembly logger."""
    return _report_logger


def parse_log_level(log_level: Optional[str]) -> int:
    """Map a CLI level name to a logging level, defaulting to warn."""
    if not log_level:
        return logging.WARNING
    return LOG_LEVELS.get(log_level.lower(), logging.WARNING)


def configure_logging(
    log_level: str = "warn",
    enable_json: bool = False,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Configure the package root logger; safe to call more than once."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(parse_log_level(log_level))
    root.propagate = False

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler: logging.Handler
    if enable_json:
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
    else:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_time=False,
            show_path=False,
            markup=False,
        )
    root.addHandler(handler)
    return root


def log_run_summary(stats: Dict[str, Any]) -> None:
    """Log the end-of-run error statistics."""
    if stats:
        _report_logger.info("run_summary", "Degraded steps during run", **{
            key.lower(): value for key, value in stats.items()
        })
