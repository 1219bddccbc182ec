"""
Structured Logging Configuration Module

JSON log lines for servicing operations. Every engine invocation made by the
servicing layer is logged with the loan it concerns and the action taken, so
a loan's history can be reconstructed from the log stream alone.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional

# Record attributes lifted into the top level of each JSON line
STRUCTURED_FIELDS = ("correlation_id", "loan_id", "action", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per log record"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Decimals and dates fall back to str
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "lending",
                  log_format: str = "json") -> logging.Logger:
    """
    Attach a single stderr handler to the lending logger.

    Calling it again replaces the handler rather than stacking another one.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Logger to configure; child loggers inherit it
        log_format: "json" for structured lines, "text" for plain ones

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    formatter = logging.Formatter(TEXT_FORMAT) if log_format == "text" else JSONFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str = "lending") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               loan_id: Optional[str] = None, action: Optional[str] = None,
               correlation_id: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a servicing action with its structured context.

    Args:
        logger: Logger to emit on
        level: Level name, e.g. "info" or "warning"
        message: Human-readable summary
        loan_id: Loan the action concerns
        action: Engine operation, e.g. "allocate_payment"
        correlation_id: Caller's request identifier
        extra: Amounts and counts relevant to the action
    """
    levelno = logging.getLevelName(level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    context = {"loan_id": loan_id, "action": action,
               "correlation_id": correlation_id, "extra": extra}
    for name, value in context.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)


def configure_logging(settings, logger_name: str = "lending") -> logging.Logger:
    """Set up logging from an EngineConfig's log_level and log_format"""
    return setup_logging(level=settings.log_level, logger_name=logger_name,
                         log_format=settings.log_format)
