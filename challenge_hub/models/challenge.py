from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from challenge_hub.core.typing import UtcNaiveDatetime, utc_now
from challenge_hub.models.slugs import generate_slug, new_id


class Challenge(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    client_id: str = Field(foreign_key="client.id", index=True)
    internal_name: str
    public_title: Optional[str] = Field(default=None)
    show_public_title: bool = Field(default=True)
    slug: str = Field(default_factory=generate_slug, index=True, unique=True)

    # Branding and page content
    description: Optional[str] = Field(default=None)  # rich text (HTML)
    visual_url: Optional[str] = Field(default=None)
    brand_color: Optional[str] = Field(default=None)  # e.g. "#3b82f6"
    support_info: Optional[str] = Field(default=None)
    contact_info: Optional[str] = Field(default=None)
    password_instructions: Optional[str] = Field(default=None)

    is_archived: bool = Field(default=False, index=True)
    created_at: UtcNaiveDatetime = Field(default_factory=utc_now, index=True)

    @property
    def display_name(self) -> str:
        return self.public_title or self.internal_name


class Sprint(SQLModel, table=True):
    """Optional sub-grouping of assignments with its own schedule and password."""

    id: str = Field(default_factory=new_id, primary_key=True)
    challenge_id: str = Field(foreign_key="challenge.id", index=True)
    name: str
    position: int = Field(default=0)
    starts_at: Optional[UtcNaiveDatetime] = Field(default=None)
    ends_at: Optional[UtcNaiveDatetime] = Field(default=None)
    password_hash: Optional[str] = Field(default=None)


class ChallengeLabel(SQLModel, table=True):
    """Per-challenge override of a piece of public UI text."""

    __tablename__ = "challenge_label"
    __table_args__ = (UniqueConstraint("challenge_id", "key", name="uq_challenge_label_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    challenge_id: str = Field(foreign_key="challenge.id", index=True)
    key: str
    value: str
