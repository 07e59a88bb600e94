"""
Analytics event log. Rows are append-only; aggregates are always derived
by re-reading the log.
"""

from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field, Column, JSON

from challenge_hub.core.typing import UtcNaiveDatetime, utc_now


class EventType(str, Enum):
    CHALLENGE_VIEW = "challenge_view"
    ASSIGNMENT_VIEW = "assignment_view"
    ASSIGNMENT_COMPLETE = "assignment_complete"
    MEDIA_PLAY = "media_play"
    PASSWORD_ATTEMPT = "password_attempt"
    QUIZ_RESPONSE = "quiz_response"


# Everything except challenge_view is scoped to an assignment
ASSIGNMENT_SCOPED_EVENTS = frozenset(
    {
        EventType.ASSIGNMENT_VIEW,
        EventType.ASSIGNMENT_COMPLETE,
        EventType.MEDIA_PLAY,
        EventType.PASSWORD_ATTEMPT,
        EventType.QUIZ_RESPONSE,
    }
)

VIEW_EVENTS = (EventType.CHALLENGE_VIEW, EventType.ASSIGNMENT_VIEW)


class AnalyticsEvent(SQLModel, table=True):
    """One anonymous analytics event."""

    __tablename__ = "analytics_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_type: str = Field(index=True)
    client_id: str = Field(foreign_key="client.id", index=True)
    challenge_id: str = Field(foreign_key="challenge.id", index=True)
    assignment_id: Optional[str] = Field(default=None, foreign_key="assignment.id", index=True)
    sprint_id: Optional[str] = Field(default=None)
    session_id: str = Field(index=True)

    # Stored in the "metadata" column; the attribute name is taken by SQLModel
    event_metadata: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))

    created_at: UtcNaiveDatetime = Field(default_factory=utc_now, index=True)
