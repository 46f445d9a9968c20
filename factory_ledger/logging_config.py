"""
Structured Logging Configuration Module

Every ledger mutation is logged once with who did it (``actor``), what was
done (``action``) and what it touched (``resource``, e.g. ``loan:<id>``).
Output is one JSON object per line unless the text format is configured.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LEDGER_LOGGER = "factory_ledger"

# Structured fields carried on a LogRecord by log_action
_CONTEXT_FIELDS = ("actor", "action", "resource", "extra")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; absent context fields are left out"""

    def format(self, record):
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain single-line output with the actor and resource appended"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        context = " ".join(
            f"{name}={getattr(record, name)}" for name in ("actor", "resource")
            if getattr(record, name, None)
        )
        return f"{line} [{context}]" if context else line


def setup_logging(level: str = "INFO", logger_name: str = LEDGER_LOGGER,
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a single handler to the ledger logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        logger_name: Parent logger; service loggers are its children
        log_format: "json" or "text"
        log_file: Append to this file instead of stderr

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False

    return logger


def configure_logging(config) -> logging.Logger:
    """Set up the ledger logger from a LedgerConfig"""
    return setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)


def get_logger(name: str = LEDGER_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               actor: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a ledger action with its structured context.

    Args:
        logger: Service logger
        level: "info", "warning", ...
        message: Human-readable summary
        actor: User who performed the action
        action: Operation name, e.g. "record_payment"
        resource: "<kind>:<id>" of the entity touched
        extra: Additional fields (amounts already formatted)
    """
    context = {"actor": actor, "action": action, "resource": resource, "extra": extra}
    logger.log(
        logging.getLevelName(level.upper()),
        message,
        extra={k: v for k, v in context.items() if v}
    )
