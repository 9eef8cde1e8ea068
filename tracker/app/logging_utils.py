"""Logging helpers for the tracker services.

Usage:
    from .logging_utils import get_logger, log_operation

    logger = get_logger(__name__)
    log_operation(logger, operation="append_checkpoint", outcome="success",
                  package_id="1a2b3c4d", order=3)
"""
import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "info") -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the 'tracker' namespace.

    >>> get_logger("tracker.app.lifecycle").name
    'tracker.lifecycle'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"tracker.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """Log a service operation with its context attached as ``extra`` fields.

    The context is also rendered into the message so it shows up with the
    default formatter.
    """
    extra = {"operation": operation, "outcome": outcome, **context}
    details = " ".join(f"{k}={v}" for k, v in context.items())
    message = f"{operation}: {outcome}"
    if details:
        message = f"{message} ({details})"
    logger.log(level, message, extra=extra)
