"""
Password gate for assignments and sprints.

A successful guess is persisted as a signed access grant in a per-resource
cookie (``assignment_access_{id}`` / ``sprint_access_{id}``). The grant is
re-validated on every request; there is no re-lock operation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

import structlog
from starlette.responses import Response

from challenge_hub.core import jwt as grants
from challenge_hub.core.config import settings
from challenge_hub.core.security import get_password_hash, verify_password as _verify
from challenge_hub.services.analytics import PageAnalytics

logger = structlog.get_logger(__name__)


class ResourceKind(str, Enum):
    ASSIGNMENT = "assignment"
    SPRINT = "sprint"


class GateState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class UnlockResult:
    success: bool
    state: GateState
    token: Optional[str] = None


def hash_password(plain: str) -> str:
    return get_password_hash(plain)


def verify_password(plain: str, password_hash: Optional[str]) -> bool:
    return _verify(plain, password_hash or "")


def grant_cookie_name(kind: ResourceKind, resource_id: str) -> str:
    return f"{kind.value}_access_{resource_id}"


def create_access_grant(kind: ResourceKind, resource_id: str) -> str:
    return grants.create_access_grant(scope=kind.value, subject=resource_id)


def read_access_grant(kind: ResourceKind, token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return grants.read_access_grant(token, scope=kind.value)


def has_access(
    kind: ResourceKind,
    resource_id: str,
    password_hash: Optional[str],
    cookies: Mapping[str, str],
) -> bool:
    """Resources without a password are open; others need a matching grant cookie."""
    if not password_hash:
        return True
    return read_access_grant(kind, cookies.get(grant_cookie_name(kind, resource_id))) == resource_id


def gate_state(
    kind: ResourceKind,
    resource_id: str,
    password_hash: Optional[str],
    cookies: Mapping[str, str],
) -> GateState:
    if has_access(kind, resource_id, password_hash, cookies):
        return GateState.UNLOCKED
    return GateState.LOCKED


def attempt_unlock(
    kind: ResourceKind,
    resource_id: str,
    password_hash: Optional[str],
    guess: str,
    tracker: Optional[PageAnalytics] = None,
) -> UnlockResult:
    """
    Check a password guess and issue a grant on success.

    Every attempt is recorded as a password_attempt event when the tracker
    knows the analytics context (challenge and assignment).
    """
    success = bool(password_hash) and verify_password(guess, password_hash)

    if tracker is not None:
        tracker.on_password_attempt(success)

    logger.info(
        "Password attempt",
        kind=kind.value,
        resource_id=resource_id,
        success=success,
    )

    if not success:
        return UnlockResult(success=False, state=GateState.LOCKED)
    return UnlockResult(
        success=True,
        state=GateState.UNLOCKED,
        token=create_access_grant(kind, resource_id),
    )


def apply_grant_cookie(response: Response, kind: ResourceKind, resource_id: str, token: str) -> None:
    response.set_cookie(
        key=grant_cookie_name(kind, resource_id),
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_GRANT_EXPIRE_MINUTES * 60,
        path="/",
    )
