"""
Centralized logging configuration and utilities.

Provides structured logging with JSON or console output and helpers for the
events every run reports: navigations, per-target outcomes and webhook
batch deliveries.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import structlog
from structlog.stdlib import LoggerFactory

from ..config import LoggingConfig


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    config: Optional[LoggingConfig] = None
) -> structlog.stdlib.BoundLogger:
    """
    Set up structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file. If None, logs to console only.
        log_format: Log format ('json' or 'text')
        config: Logging section of the application config, used for
            anything not passed explicitly
    """
    config = config or LoggingConfig()

    log_level = (level or config.level).upper()
    log_format = log_format or config.format
    log_file = log_file or config.file

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        )

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level, logging.INFO),
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        logging.getLogger().addHandler(file_handler)

    return structlog.get_logger("root")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


def log_navigation(
    portal: str,
    url: str,
    elapsed: float,
    success: bool,
    error_message: Optional[str] = None
) -> None:
    """
    Log a page navigation for audit and monitoring.

    Args:
        portal: Key of the portal target
        url: URL navigated to
        elapsed: Time taken in seconds
        success: Whether the page loaded
        error_message: Error message if navigation failed
    """
    logger = get_logger(__name__)

    log_data = {
        "portal": portal,
        "url": url,
        "elapsed": round(elapsed, 3),
        "success": success,
    }

    if error_message:
        log_data["error_message"] = error_message

    if success:
        logger.debug("Navigation successful", **log_data)
    else:
        logger.warning("Navigation failed", **log_data)


def log_target_result(
    target: str,
    rows_found: int,
    opportunities_found: int,
    elapsed: float,
    success: bool,
    error_message: Optional[str] = None
) -> None:
    """Log the outcome of crawling one portal target."""
    logger = get_logger(__name__)

    log_data = {
        "target": target,
        "rows_found": rows_found,
        "opportunities_found": opportunities_found,
        "elapsed": round(elapsed, 3),
        "success": success,
    }

    if error_message:
        log_data["error_message"] = error_message

    if success:
        logger.info("Target completed", **log_data)
    else:
        logger.warning("Target skipped", **log_data)


def log_batch_delivery(
    batch_index: int,
    total_batches: int,
    success: bool,
    status_code: Optional[int] = None,
    response_snippet: Optional[str] = None,
    error_message: Optional[str] = None
) -> None:
    """
    Log a webhook batch delivery.

    Args:
        batch_index: Zero-based index of the batch
        total_batches: Number of batches in the run
        success: Whether the sink accepted the batch
        status_code: HTTP status, when a response was received
        response_snippet: Truncated response body for failed batches
        error_message: Network error message, when no response was received
    """
    logger = get_logger(__name__)

    log_data = {
        "batch": batch_index + 1,
        "total_batches": total_batches,
        "success": success,
    }

    if status_code is not None:
        log_data["status_code"] = status_code

    if response_snippet:
        log_data["response"] = response_snippet

    if error_message:
        log_data["error_message"] = error_message

    if success:
        logger.info("Batch delivered", **log_data)
    else:
        logger.error("Batch delivery failed", **log_data)
