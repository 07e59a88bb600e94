"""
Error handling with optional Sentry integration.

Every captured error is logged through structlog with the request context
(request_id, analytics session_id). When a Sentry DSN is configured the
error is also sent to Sentry.

Usage:
    # Capture an exception
    capture_exception(exc, context={"challenge_id": "c1"})

    # Capture a message (non-exception event)
    capture_message("Labels table missing", level="warning")

    # Context manager for operations that must not fail the request
    with ErrorHandler("track_event", context={"event_type": "media_play"}):
        record(...)
"""

from typing import Optional, Any, Dict
from datetime import datetime, timezone
from contextlib import contextmanager
import structlog

from challenge_hub.core.context import get_request_id, get_session_id, get_context_dict

logger = structlog.get_logger(__name__)

__all__ = [
    "ConfigurationError",
    "init_sentry",
    "capture_exception",
    "capture_message",
    "ErrorHandler",
    "error_boundary",
]

_sentry_initialized: bool = False


class ConfigurationError(RuntimeError):
    """Raised when required settings (database credentials, keys) are missing."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


def init_sentry(
    dsn: str,
    environment: str = "production",
    traces_sample_rate: float = 0.1,
    release: Optional[str] = None,
) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Returns:
        True if initialization successful, False otherwise
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    try:
        import logging
        import os

        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        if not release:
            release = os.environ.get("GIT_COMMIT_SHA")

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=release,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            send_default_pii=False,
            before_send=_before_send,
        )

        _sentry_initialized = True
        logger.info(
            "Sentry initialized",
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=release,
        )
        return True

    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Drop health check noise and tag events with the request context."""
    if "request" in event:
        url = event["request"].get("url", "")
        if "/health" in url:
            return None

    request_id = get_request_id()
    if request_id:
        event.setdefault("tags", {})["request_id"] = request_id

    session_id = get_session_id()
    if session_id:
        event.setdefault("tags", {})["analytics_session"] = session_id

    return event


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
    fingerprint: Optional[list[str]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture an exception with Sentry and structured logging.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"challenge_id": "c1"})
        level: Severity level (debug, info, warning, error, fatal)
        fingerprint: Custom grouping fingerprint for Sentry
        tags: Additional tags for filtering in Sentry

    Returns:
        Sentry event ID or None if not sent
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        **(context or {}),
    }

    logger.error(
        "Exception captured",
        exc_info=exc,
        **enriched_context,
    )

    if _sentry_initialized:
        try:
            import sentry_sdk

            with sentry_sdk.push_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)

                if tags:
                    for key, value in tags.items():
                        scope.set_tag(key, value)

                if fingerprint:
                    scope.fingerprint = fingerprint

                scope.level = level
                return sentry_sdk.capture_exception(exc)
        except Exception as e:
            logger.warning("Failed to send exception to Sentry", error=str(e))

    return None


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture a message with Sentry (for non-exception events).

    Useful for silent degradations such as a missing table or a
    misconfigured backend that are answered with an empty result.
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **(context or {}),
    }

    log_func = getattr(logger, level, logger.info)
    log_func(message, **enriched_context)

    if _sentry_initialized:
        try:
            import sentry_sdk

            with sentry_sdk.push_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)

                if tags:
                    for key, value in tags.items():
                        scope.set_tag(key, value)

                scope.level = level
                return sentry_sdk.capture_message(message, level=level)
        except Exception as e:
            logger.warning("Failed to send message to Sentry", error=str(e))

    return None


class ErrorHandler:
    """
    Context manager for handling errors with automatic capture.

    Usage:
        # Suppress and capture errors
        with ErrorHandler("track_event", context={"event_type": "challenge_view"}):
            insert_event(...)

        # Re-raise after capturing
        with ErrorHandler("create_assignment", reraise=True):
            save(...)

    Args:
        operation: Name of the operation (for grouping in Sentry)
        context: Additional context dict
        capture: Whether to capture the error (default: True)
        reraise: Whether to re-raise exception (default: False)
        fingerprint: Custom fingerprint for Sentry grouping
    """

    def __init__(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        capture: bool = True,
        reraise: bool = False,
        fingerprint: Optional[list[str]] = None,
    ):
        self.operation = operation
        self.context = context or {}
        self.capture = capture
        self.reraise = reraise
        self.fingerprint = fingerprint or [operation]
        self.event_id: Optional[str] = None
        self.error: Optional[BaseException] = None

    def __enter__(self) -> "ErrorHandler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is not None:
            self.error = exc_val
            if self.capture:
                self.event_id = capture_exception(
                    exc_val,
                    context={
                        "operation": self.operation,
                        **self.context,
                    },
                    fingerprint=self.fingerprint + [type(exc_val).__name__],
                )

            # Return True to suppress exception (unless reraise=True)
            return not self.reraise

        return False

    @property
    def failed(self) -> bool:
        return self.error is not None


@contextmanager
def error_boundary(operation: str, **context):
    """
    Simplified error boundary: captures and suppresses errors.

    Usage:
        with error_boundary("fetch_labels", challenge_id=challenge_id) as handler:
            labels = load()
        if handler.failed:
            labels = []
    """
    handler = ErrorHandler(operation, context=context, capture=True, reraise=False)
    with handler:
        yield handler
