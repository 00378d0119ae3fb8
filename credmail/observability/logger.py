import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from credmail.core.config import AppConfig, load_config

logger = logging.getLogger(__name__)


class TimingContext:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration_ms = (time.time() - self.start_time) * 1000

    def get_duration_ms(self) -> Optional[float]:
        """Get duration in milliseconds."""
        return self.duration_ms


@contextmanager
def timing(operation_name: str):
    """Context manager for timing operations."""
    context = TimingContext(operation_name)
    with context:
        yield context


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def log_event(
    action: str,
    method: str,
    kind: str,
    recipients_count: int,
    success: int,
    failed: int,
    duration_ms: Optional[float] = None,
    **kwargs
) -> None:
    """
    Log a structured delivery event.

    Args:
        action: The action performed (e.g., 'delivered', 'previewed')
        method: Delivery channel ('desktop' or 'graph')
        kind: Credential kind ('pin' or 'otp')
        recipients_count: Number of requests in the batch
        success: Messages delivered or drafts opened
        failed: Validation plus dispatch failures
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields to include in the log
    """
    log_entry = {
        "timestamp": _timestamp(),
        "action": action,
        "method": method,
        "kind": kind,
        "recipients_count": recipients_count,
        "success": success,
        "failed": failed,
    }

    if duration_ms is not None:
        log_entry["duration_ms"] = round(duration_ms, 2)

    log_entry.update(kwargs)

    logger.info(json.dumps(log_entry, separators=(',', ':')))


def sanitize_subject(subject: str) -> str:
    """
    Sanitize subject to avoid logging sensitive information.

    Subjects that mention a credential are redacted entirely.
    """
    sensitive_patterns = [
        "password",
        "secret",
        "token",
        "pin",
        "otp",
        "credential",
    ]

    lowered = subject.lower()
    for pattern in sensitive_patterns:
        if pattern in lowered:
            return "[REDACTED]"

    if len(subject) > 100:
        return subject[:97] + "..."

    return subject


def init_sentry(config: Optional[AppConfig] = None) -> bool:
    """
    Initialize Sentry if enabled and DSN is provided.

    Returns:
        True if Sentry was initialized, False otherwise
    """
    config = config or load_config()
    if not config.obs_enabled:
        return False

    if not config.sentry_dsn:
        logger.info("Sentry DSN not provided, skipping Sentry initialization")
        return False

    try:
        sentry_sdk.init(
            dsn=config.sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR
                ),
            ],
            traces_sample_rate=0.1,
            environment=config.environment,
            send_default_pii=False,
        )

        logger.info("Sentry initialized successfully")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with optional context.

    Args:
        error: The exception to log
        context: Optional context dictionary
    """
    log_entry = {
        "timestamp": _timestamp(),
        "level": "ERROR",
        "error": str(error),
        "error_type": type(error).__name__,
    }

    if context:
        log_entry.update(context)

    logger.error(json.dumps(log_entry, separators=(',', ':')))


def log_warning(message: str, context: Dict[str, Any] = None) -> None:
    """
    Log a warning with optional context.

    Args:
        message: The warning message
        context: Optional context dictionary
    """
    log_entry = {
        "timestamp": _timestamp(),
        "level": "WARNING",
        "message": message,
    }

    if context:
        log_entry.update(context)

    logger.warning(json.dumps(log_entry, separators=(',', ':')))
