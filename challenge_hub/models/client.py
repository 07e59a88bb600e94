from typing import Optional

from sqlmodel import Field, SQLModel

from challenge_hub.core.typing import UtcNaiveDatetime, utc_now
from challenge_hub.models.slugs import new_id


class Client(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True)
    logo_url: Optional[str] = Field(default=None)
    created_at: UtcNaiveDatetime = Field(default_factory=utc_now, index=True)
