"""
Logging setup shared by every onnxbridge module.

Records go to stdout, as JSON by default (LOG_FORMAT=json) or as plain
text for local runs. LOG_LEVEL picks the level of the package logger.
"""

import json
import logging
import os
import sys

ROOT_LOGGER = "onnxbridge"


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def _configure_root() -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)

    # Only configure if no handlers exist
    if not logger.handlers:
        logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
        handler = logging.StreamHandler(sys.stdout)
        if os.getenv("LOG_FORMAT", "json") == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
        logger.addHandler(handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger below the configured ``onnxbridge`` root.

    Args:
        name: Dotted logger name, usually ``__name__``

    Returns:
        logger: Child of the package logger (records propagate to it)
    """
    root = _configure_root()
    if name == ROOT_LOGGER:
        return root
    return logging.getLogger(name)
