"""
Request context management for log correlation.

Provides request_id correlation across logs and error tracking, plus the
anonymous analytics session id resolved for the current request.
Uses contextvars for async-safe context propagation.

Usage:
    # In middleware (automatic)
    set_request_id(generate_request_id())

    # In business logic (read-only)
    logger.info("Processing", request_id=get_request_id())
"""

from contextvars import ContextVar
from typing import Optional
import uuid

__all__ = [
    "set_request_id",
    "get_request_id",
    "generate_request_id",
    "set_session_id",
    "get_session_id",
    "set_correlation_id",
    "get_correlation_id",
    "clear_context",
    "get_context_dict",
]

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def generate_request_id() -> str:
    """
    Generate a new request ID.

    Format: req_{16 hex chars}
    Example: req_a1b2c3d4e5f6a7b8
    """
    return f"req_{uuid.uuid4().hex[:16]}"


def set_request_id(request_id: str) -> None:
    """Set request ID for current async context."""
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    """Get request ID from current async context."""
    return _request_id.get()


def set_session_id(session_id: str) -> None:
    """Set the anonymous analytics session id for the current request."""
    _session_id.set(session_id)


def get_session_id() -> Optional[str]:
    return _session_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set correlation ID for distributed tracing.

    Correlation ID spans multiple services/requests and is passed
    via X-Correlation-ID header for end-to-end tracing.
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from current context."""
    return _correlation_id.get()


def clear_context() -> None:
    """
    Clear all context variables.

    Called at end of request to prevent context leaking.
    """
    _request_id.set(None)
    _session_id.set(None)
    _correlation_id.set(None)


def get_context_dict() -> dict:
    """Get all context variables as dict, for enriching error reports."""
    return {
        "request_id": get_request_id(),
        "session_id": get_session_id(),
        "correlation_id": get_correlation_id(),
    }
