"""
Structured logging setup for the triage service.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag every entry with the service name."""
    event_dict.setdefault("service", "triage")
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_source_failure(user_id: str, source: str, kind: str, message: str) -> None:
    """Log a source that failed during a triage run with consistent fields."""
    logger = get_logger("triage.sources")
    logger.warning(
        "Triage source failed",
        user_id=user_id,
        source=source,
        error_kind=kind,
        error=message,
        event_type="triage_source_failure",
    )


def log_sync_summary(user_id: str, added: int, skipped: int, error_count: int, duration_ms: float):
    """Log the outcome of one triage run."""
    logger = get_logger("triage.sync")

    log_data = {
        "user_id": user_id,
        "added": added,
        "skipped": skipped,
        "error_count": error_count,
        "duration_ms": duration_ms,
        "event_type": "triage_sync",
    }

    if error_count:
        logger.warning("Triage sync completed with errors", **log_data)
    else:
        logger.info("Triage sync completed", **log_data)
