"""
Anonymous analytics: session identity and the event recorder.

The session id is an opaque random token kept in a 24h cookie. It carries
no personal identifiers and is only used to count unique visitors.

Recording is fire-and-forget: a failed insert is rolled back, captured and
reported as ``TrackResult(success=False)``; the event is lost (no retry).
"""

import re
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.responses import Response

from challenge_hub.core.config import settings
from challenge_hub.core.errors import capture_exception
from challenge_hub.models.analytics import AnalyticsEvent, EventType

logger = structlog.get_logger(__name__)

MAX_SESSION_ID_LENGTH = 64
SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


# --- Session identity -----------------------------------------------------


@dataclass(frozen=True)
class SessionIdentity:
    session_id: str
    is_new: bool


def resolve_session(cookie_value: Optional[str]) -> SessionIdentity:
    """Keep a well-formed session cookie value, otherwise mint a new id."""
    if (
        cookie_value
        and len(cookie_value) <= MAX_SESSION_ID_LENGTH
        and SESSION_ID_PATTERN.match(cookie_value)
    ):
        return SessionIdentity(session_id=cookie_value, is_new=False)
    return SessionIdentity(session_id=str(uuid.uuid4()), is_new=True)


def apply_session_cookie(response: Response, identity: SessionIdentity) -> None:
    """Write the session cookie, only when the id was minted for this request."""
    if not identity.is_new:
        return
    response.set_cookie(
        key=settings.ANALYTICS_SESSION_COOKIE,
        value=identity.session_id,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ANALYTICS_SESSION_MAX_AGE,
        path="/",
    )


# --- Event recorder -------------------------------------------------------


@dataclass
class TrackEventParams:
    event_type: EventType
    client_id: str
    challenge_id: str
    assignment_id: Optional[str] = None
    sprint_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


@dataclass
class TrackResult:
    success: bool
    error: Optional[str] = None


def track_event(db: Session, params: TrackEventParams, session_id: str) -> TrackResult:
    """Insert one analytics event. Never raises on storage errors."""
    event_type = EventType(params.event_type)
    event = AnalyticsEvent(
        event_type=event_type.value,
        client_id=params.client_id,
        challenge_id=params.challenge_id,
        assignment_id=params.assignment_id or None,
        sprint_id=params.sprint_id or None,
        session_id=session_id,
        event_metadata=params.metadata or None,
    )
    try:
        db.add(event)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        capture_exception(
            e,
            context={
                "operation": "track_event",
                "event_type": event_type.value,
                "challenge_id": params.challenge_id,
            },
            level="warning",
        )
        return TrackResult(success=False, error="Failed to track event")

    logger.debug(
        "Analytics event recorded",
        event_type=event_type.value,
        challenge_id=params.challenge_id,
        assignment_id=params.assignment_id,
    )
    return TrackResult(success=True)


def track_challenge_view(db: Session, session_id: str, client_id: str, challenge_id: str) -> TrackResult:
    return track_event(
        db,
        TrackEventParams(EventType.CHALLENGE_VIEW, client_id, challenge_id),
        session_id,
    )


def track_assignment_view(
    db: Session,
    session_id: str,
    client_id: str,
    challenge_id: str,
    assignment_id: str,
    sprint_id: Optional[str] = None,
) -> TrackResult:
    return track_event(
        db,
        TrackEventParams(EventType.ASSIGNMENT_VIEW, client_id, challenge_id, assignment_id, sprint_id),
        session_id,
    )


def track_assignment_complete(
    db: Session,
    session_id: str,
    client_id: str,
    challenge_id: str,
    assignment_id: str,
    sprint_id: Optional[str] = None,
) -> TrackResult:
    return track_event(
        db,
        TrackEventParams(EventType.ASSIGNMENT_COMPLETE, client_id, challenge_id, assignment_id, sprint_id),
        session_id,
    )


def track_media_play(
    db: Session,
    session_id: str,
    client_id: str,
    challenge_id: str,
    assignment_id: str,
    metadata: Optional[dict[str, Any]] = None,
) -> TrackResult:
    """metadata: ``{"media_type": "youtube" | "vimeo" | "video", "duration": seconds}``"""
    return track_event(
        db,
        TrackEventParams(
            EventType.MEDIA_PLAY,
            client_id,
            challenge_id,
            assignment_id,
            metadata=metadata,
        ),
        session_id,
    )


def track_password_attempt(
    db: Session,
    session_id: str,
    client_id: str,
    challenge_id: str,
    assignment_id: str,
    success: bool,
) -> TrackResult:
    return track_event(
        db,
        TrackEventParams(
            EventType.PASSWORD_ATTEMPT,
            client_id,
            challenge_id,
            assignment_id,
            metadata={"success": bool(success)},
        ),
        session_id,
    )


def track_quiz_response(
    db: Session,
    session_id: str,
    client_id: str,
    challenge_id: str,
    assignment_id: str,
    question_id: str,
    response: Any,
) -> TrackResult:
    return track_event(
        db,
        TrackEventParams(
            EventType.QUIZ_RESPONSE,
            client_id,
            challenge_id,
            assignment_id,
            metadata={"question_id": question_id, "response": response},
        ),
        session_id,
    )


class PageAnalytics:
    """
    Tracker bound to one page mount.

    The *_once methods record at most one event per instance; the guard
    flags live on the instance and are never shared between requests.
    Assignment-scoped callbacks do nothing without an assignment id.

    Usage:
        tracker = PageAnalytics(db, session_id, client_id, challenge_id)
        tracker.track_challenge_view_once()
    """

    def __init__(
        self,
        db: Session,
        session_id: str,
        client_id: str,
        challenge_id: str,
        assignment_id: Optional[str] = None,
        sprint_id: Optional[str] = None,
    ):
        self.db = db
        self.session_id = session_id
        self.client_id = client_id
        self.challenge_id = challenge_id
        self.assignment_id = assignment_id
        self.sprint_id = sprint_id
        self._view_tracked = False
        self._media_play_tracked = False

    def track_challenge_view_once(self) -> Optional[TrackResult]:
        if self._view_tracked:
            return None
        self._view_tracked = True
        return track_challenge_view(self.db, self.session_id, self.client_id, self.challenge_id)

    def track_assignment_view_once(self) -> Optional[TrackResult]:
        if self._view_tracked or not self.assignment_id:
            return None
        self._view_tracked = True
        return track_assignment_view(
            self.db,
            self.session_id,
            self.client_id,
            self.challenge_id,
            self.assignment_id,
            self.sprint_id,
        )

    def track_media_play_once(self, metadata: Optional[dict[str, Any]] = None) -> Optional[TrackResult]:
        if self._media_play_tracked or not self.assignment_id:
            return None
        self._media_play_tracked = True
        return track_media_play(
            self.db, self.session_id, self.client_id, self.challenge_id, self.assignment_id, metadata
        )

    def on_complete(self) -> Optional[TrackResult]:
        if not self.assignment_id:
            return None
        return track_assignment_complete(
            self.db,
            self.session_id,
            self.client_id,
            self.challenge_id,
            self.assignment_id,
            self.sprint_id,
        )

    def on_password_attempt(self, success: bool) -> Optional[TrackResult]:
        if not self.assignment_id:
            return None
        return track_password_attempt(
            self.db, self.session_id, self.client_id, self.challenge_id, self.assignment_id, success
        )

    def on_quiz_response(self, question_id: str, response: Any) -> Optional[TrackResult]:
        if not self.assignment_id:
            return None
        return track_quiz_response(
            self.db,
            self.session_id,
            self.client_id,
            self.challenge_id,
            self.assignment_id,
            question_id,
            response,
        )
