"""
Public challenge and assignment pages.

Pages are returned as JSON payloads. Each GET records its view once through
PageAnalytics; a failed recording never fails the page.
"""

from dataclasses import asdict
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlmodel import Session

from challenge_hub.api.deps import get_session_identity
from challenge_hub.core.errors import error_boundary
from challenge_hub.core.typing import utc_now
from challenge_hub.db import get_session
from challenge_hub.models import Assignment
from challenge_hub.services.access_gate import (
    GateState,
    ResourceKind,
    apply_grant_cookie,
    attempt_unlock,
    gate_state,
)
from challenge_hub.services.analytics import PageAnalytics, SessionIdentity, apply_session_cookie
from challenge_hub.services.content import (
    DEFAULT_BRAND_COLOR,
    challenge_title,
    compose_assignment_layout,
    compose_challenge_page,
    media_type_for,
)
from challenge_hub.services.labels import get_challenge_labels, labels_as_dict
from challenge_hub.services.public import (
    AssignmentNavContext,
    get_assignment_nav_context,
    get_pending_usages,
    get_public_assignment,
    get_public_challenge,
    get_public_sprints,
    get_public_usages,
    resolve_legacy_slug,
)

router = APIRouter()
legacy_router = APIRouter()


class UnlockRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    password: str
    from_slug: Optional[str] = Field(default=None, alias="from")


class UnlockResponse(BaseModel):
    success: bool
    state: GateState


class ActivityRequest(BaseModel):
    """In-page activity reported by the assignment page."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["media_play", "complete", "quiz_response"]
    from_slug: Optional[str] = Field(default=None, alias="from")
    question_id: Optional[str] = Field(default=None, min_length=1)
    response: Any = None

    @model_validator(mode="after")
    def check_quiz_fields(self) -> "ActivityRequest":
        if self.kind == "quiz_response" and not self.question_id:
            raise ValueError("quiz_response requires question_id")
        return self


class ActivityResponse(BaseModel):
    success: bool
    error: Optional[str] = None


def unlock_failed(identity: SessionIdentity) -> JSONResponse:
    """401 for a wrong password, still carrying the session cookie."""
    response = JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Incorrect password"},
    )
    apply_session_cookie(response, identity)
    return response


def render_challenge_page(
    db: Session, slug: str, request: Request, identity: SessionIdentity
) -> dict[str, Any]:
    found = get_public_challenge(db, slug)
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Challenge not found")

    challenge = found.challenge
    now = utc_now()
    sprints = get_public_sprints(db, challenge.id)
    pending = get_pending_usages(db, challenge.id, now)
    locked = {
        sprint.id
        for sprint in sprints
        if gate_state(ResourceKind.SPRINT, sprint.id, sprint.password_hash, request.cookies) == GateState.LOCKED
    }
    page = compose_challenge_page(
        challenge,
        found.client,
        get_public_usages(db, challenge.id, now),
        pending_count=pending.count,
        next_release_at=pending.next_release_at,
        sprints=sprints,
        labels=labels_as_dict(get_challenge_labels(db, challenge.id).unwrap_or([])),
        locked_sprint_ids=locked,
    )

    with error_boundary("track_challenge_view", challenge_id=challenge.id):
        PageAnalytics(db, identity.session_id, challenge.client_id, challenge.id).track_challenge_view_once()
    return asdict(page)


def _challenge_context(nav: AssignmentNavContext) -> dict[str, Any]:
    challenge = nav.challenge
    return {
        "id": challenge.id,
        "slug": challenge.slug,
        "title": challenge_title(challenge, nav.client),
        "brand_color": challenge.brand_color or DEFAULT_BRAND_COLOR,
        "client_name": nav.client.name if nav.client else None,
        "client_logo_url": nav.client.logo_url if nav.client else None,
        "support_info": challenge.support_info,
        "contact_info": challenge.contact_info,
        "password_instructions": challenge.password_instructions,
        "back_url": f"/c/{challenge.slug}",
    }


def render_assignment_page(
    db: Session,
    assignment: Assignment,
    from_slug: Optional[str],
    request: Request,
    identity: SessionIdentity,
) -> dict[str, Any]:
    nav = get_assignment_nav_context(db, assignment, from_slug)
    is_released = nav.is_released if nav else True
    state = gate_state(ResourceKind.ASSIGNMENT, assignment.id, assignment.password_hash, request.cookies)
    visible = is_released and state == GateState.UNLOCKED

    payload: dict[str, Any] = {
        "id": assignment.id,
        "slug": assignment.slug,
        "title": assignment.display_title,
        "requires_password": bool(assignment.password_hash),
        "gate": state.value,
        "is_released": is_released,
        "release_at": nav.release_at if nav and not is_released else None,
        "challenge": _challenge_context(nav) if nav else None,
        "analytics": None,
        "layout": None,
        "two_column": False,
        "media_type": None,
    }

    if nav:
        payload["analytics"] = {
            "client_id": nav.challenge.client_id,
            "challenge_id": nav.challenge.id,
            "assignment_id": assignment.id,
            "sprint_id": nav.sprint_id,
        }

    if visible:
        layout = compose_assignment_layout(assignment)
        payload["layout"] = {"left": [asdict(b) for b in layout.left], "right": [asdict(b) for b in layout.right]}
        payload["two_column"] = layout.two_column
        if assignment.media_url:
            payload["media_type"] = media_type_for(assignment.media_url)

    if nav and visible:
        with error_boundary("track_assignment_view", assignment_id=assignment.id):
            PageAnalytics(
                db,
                identity.session_id,
                nav.challenge.client_id,
                nav.challenge.id,
                assignment_id=assignment.id,
                sprint_id=nav.sprint_id,
            ).track_assignment_view_once()

    return payload


@router.get("/c/{slug}")
def read_challenge_page(
    slug: str,
    request: Request,
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    return render_challenge_page(db, slug, request, identity)


@router.get("/a/{slug}")
def read_assignment_page(
    slug: str,
    request: Request,
    from_slug: Optional[str] = Query(default=None, alias="from"),
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    assignment = get_public_assignment(db, slug)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    return render_assignment_page(db, assignment, from_slug, request, identity)


@router.post("/a/{slug}/unlock", response_model=UnlockResponse)
def unlock_assignment(
    slug: str,
    data: UnlockRequest,
    response: Response,
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    """Check the assignment password; sets the access cookie on success."""
    assignment = get_public_assignment(db, slug)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    if not assignment.password_hash:
        return UnlockResponse(success=True, state=GateState.UNLOCKED)

    nav = get_assignment_nav_context(db, assignment, data.from_slug)
    tracker = None
    if nav:
        tracker = PageAnalytics(
            db,
            identity.session_id,
            nav.challenge.client_id,
            nav.challenge.id,
            assignment_id=assignment.id,
            sprint_id=nav.sprint_id,
        )

    result = attempt_unlock(ResourceKind.ASSIGNMENT, assignment.id, assignment.password_hash, data.password, tracker)
    if not result.success or not result.token:
        return unlock_failed(identity)

    apply_grant_cookie(response, ResourceKind.ASSIGNMENT, assignment.id, result.token)
    return UnlockResponse(success=True, state=result.state)


@router.post("/a/{slug}/activity", response_model=ActivityResponse, response_model_exclude_none=True)
def record_assignment_activity(
    slug: str,
    data: ActivityRequest,
    request: Request,
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    """
    Record a media play, completion or quiz answer for a visible assignment.

    Media plays count once per request; completions and quiz answers are
    recorded every time.
    """
    assignment = get_public_assignment(db, slug)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")

    nav = get_assignment_nav_context(db, assignment, data.from_slug)
    if nav is not None and not nav.is_released:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Assignment is not released")
    state = gate_state(ResourceKind.ASSIGNMENT, assignment.id, assignment.password_hash, request.cookies)
    if state == GateState.LOCKED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Assignment is locked")
    if nav is None:
        return ActivityResponse(success=False, error="Assignment is not part of a challenge")

    tracker = PageAnalytics(
        db,
        identity.session_id,
        nav.challenge.client_id,
        nav.challenge.id,
        assignment_id=assignment.id,
        sprint_id=nav.sprint_id,
    )
    if data.kind == "media_play":
        if not assignment.media_url:
            return ActivityResponse(success=False, error="Assignment has no media")
        result = tracker.track_media_play_once({"media_type": media_type_for(assignment.media_url)})
    elif data.kind == "complete":
        result = tracker.on_complete()
    else:
        result = tracker.on_quiz_response(data.question_id, data.response)

    return ActivityResponse(success=result.success, error=result.error)


@router.post("/c/{slug}/sprints/{sprint_id}/unlock", response_model=UnlockResponse)
def unlock_sprint(
    slug: str,
    sprint_id: str,
    data: UnlockRequest,
    response: Response,
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    found = get_public_challenge(db, slug)
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Challenge not found")
    sprint = next((s for s in get_public_sprints(db, found.challenge.id) if s.id == sprint_id), None)
    if sprint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sprint not found")
    if not sprint.password_hash:
        return UnlockResponse(success=True, state=GateState.UNLOCKED)

    tracker = PageAnalytics(db, identity.session_id, found.challenge.client_id, found.challenge.id, sprint_id=sprint.id)
    result = attempt_unlock(ResourceKind.SPRINT, sprint.id, sprint.password_hash, data.password, tracker)
    if not result.success or not result.token:
        return unlock_failed(identity)

    apply_grant_cookie(response, ResourceKind.SPRINT, sprint.id, result.token)
    return UnlockResponse(success=True, state=result.state)


@legacy_router.get("/{legacy_slug}")
def read_legacy_page(
    legacy_slug: str,
    request: Request,
    from_slug: Optional[str] = Query(default=None, alias="from"),
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    """Old platform URLs (``/MMXdXcr``) render the challenge or assignment directly."""
    match = resolve_legacy_slug(db, legacy_slug)
    if match is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    if match.kind == "challenge":
        return render_challenge_page(db, match.slug, request, identity)

    assignment = get_public_assignment(db, match.slug)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return render_assignment_page(db, assignment, from_slug, request, identity)
