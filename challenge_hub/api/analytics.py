"""
Analytics tracking endpoint.

Fire-and-forget: the response is 200 whether or not the event was stored,
so the page never waits on or fails because of tracking.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator
from sqlmodel import Session

from challenge_hub.api.deps import get_session_identity
from challenge_hub.db import get_session
from challenge_hub.models.analytics import ASSIGNMENT_SCOPED_EVENTS, EventType
from challenge_hub.services.analytics import SessionIdentity, TrackEventParams, track_event

router = APIRouter()


class TrackEventRequest(BaseModel):
    event_type: EventType
    client_id: str = Field(min_length=1)
    challenge_id: str = Field(min_length=1)
    assignment_id: Optional[str] = None
    sprint_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def check_event_scope(self) -> "TrackEventRequest":
        if self.event_type in ASSIGNMENT_SCOPED_EVENTS and not self.assignment_id:
            raise ValueError(f"{self.event_type.value} requires assignment_id")
        if self.event_type == EventType.CHALLENGE_VIEW and self.assignment_id:
            raise ValueError("challenge_view must not carry assignment_id")
        if self.event_type == EventType.PASSWORD_ATTEMPT:
            if not isinstance((self.metadata or {}).get("success"), bool):
                raise ValueError("password_attempt requires a boolean metadata.success")
        return self


class TrackEventResponse(BaseModel):
    success: bool
    error: Optional[str] = None


@router.post("/events", response_model=TrackEventResponse, response_model_exclude_none=True)
def post_event(
    data: TrackEventRequest,
    db: Session = Depends(get_session),
    identity: SessionIdentity = Depends(get_session_identity),
):
    """Record one analytics event for the visitor's anonymous session."""
    result = track_event(
        db,
        TrackEventParams(
            event_type=data.event_type,
            client_id=data.client_id,
            challenge_id=data.challenge_id,
            assignment_id=data.assignment_id,
            sprint_id=data.sprint_id,
            metadata=data.metadata,
        ),
        identity.session_id,
    )
    return TrackEventResponse(success=result.success, error=result.error)
