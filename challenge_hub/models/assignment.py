from typing import Optional
from datetime import datetime

from sqlmodel import Field, SQLModel

from challenge_hub.core.typing import UtcNaiveDatetime, utc_now
from challenge_hub.models.slugs import generate_slug, new_id


class Assignment(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    internal_title: str
    public_title: Optional[str] = Field(default=None)
    subtitle: Optional[str] = Field(default=None)
    slug: str = Field(default_factory=generate_slug, index=True, unique=True)

    # Text content: *_html is the rich-text editor output, the plain
    # fields hold Markdown/plain text from older content.
    instructions: Optional[str] = Field(default=None)
    instructions_html: Optional[str] = Field(default=None)
    content: Optional[str] = Field(default=None)
    content_html: Optional[str] = Field(default=None)

    visual_url: Optional[str] = Field(default=None)
    media_url: Optional[str] = Field(default=None)
    password_hash: Optional[str] = Field(default=None)

    created_at: UtcNaiveDatetime = Field(default_factory=utc_now, index=True)

    @property
    def display_title(self) -> str:
        return self.public_title or self.internal_title


class AssignmentUsage(SQLModel, table=True):
    """Placement of an assignment inside a challenge."""

    __tablename__ = "assignment_usage"

    id: str = Field(default_factory=new_id, primary_key=True)
    challenge_id: str = Field(foreign_key="challenge.id", index=True)
    assignment_id: str = Field(foreign_key="assignment.id", index=True)
    sprint_id: Optional[str] = Field(default=None, foreign_key="sprint.id")
    position: int = Field(default=0)
    label: Optional[str] = Field(default=None)
    is_visible: bool = Field(default=True)
    release_at: Optional[UtcNaiveDatetime] = Field(default=None)  # None means released

    def is_released(self, now: datetime) -> bool:
        return self.release_at is None or self.release_at <= now
