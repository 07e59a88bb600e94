from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from challenge_hub.core.errors import capture_message
from challenge_hub.db import get_optional_session
from challenge_hub.services.labels import get_challenge_labels

router = APIRouter()


@router.get("/{challenge_id}")
def read_labels(challenge_id: str, db: Optional[Session] = Depends(get_optional_session)):
    """Custom labels for a challenge; an empty list (use defaults) on any error."""
    if db is None:
        capture_message("Labels requested without database configuration", level="warning")
        return {"labels": []}
    labels = get_challenge_labels(db, challenge_id).unwrap_or([])
    return {"labels": [label.model_dump() for label in labels]}
