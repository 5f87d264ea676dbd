"""JSON logging configuration for local PKI operations."""

import logging
import os

from pythonjsonlogger.json import JsonFormatter

LOG_LEVEL_ENV = "LOCAL_PKI_LOG_LEVEL"


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter with a focused field set.

    Keeps timestamp, level, message, exc_info, funcName and lineno, plus the
    logger name so library records can be told apart from script output.
    """

    allowed_fields = frozenset(
        {
            "timestamp",
            "level",
            "name",
            "message",
            "exc_info",
            "funcName",
            "lineno",
        }
    )

    def add_fields(self, log_record, record, message_dict):
        """Override to include only the allowed fields.

        Args:
            log_record: Dict to be logged as JSON
            record: LogRecord object from logging framework
            message_dict: Dict containing message and args
        """
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        keys_to_remove = [key for key in log_record if key not in self.allowed_fields]
        for key in keys_to_remove:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    """Initialize and configure the package logger.

    Modules under local_pki log through logging.getLogger(__name__) and
    inherit this handler. The level comes from LOCAL_PKI_LOG_LEVEL (default INFO).

    Returns:
        Configured logger with CustomJsonFormatter
    """
    logger = logging.getLogger("local_pki")

    # Prevent duplicate handlers if module reloaded
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(levelname)s %(name)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    handler.setFormatter(formatter)

    logger.setLevel(os.environ.get(LOG_LEVEL_ENV, "INFO").upper())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


LOGGER = _setup_logger()
