"""
Per-challenge UI label overrides.

Every operation returns a Result; callers decide how to degrade. The public
labels endpoint maps any Err to an empty list so pages fall back to the
default texts (this also covers databases where the table does not exist yet).
"""

from typing import Iterable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from challenge_hub.core.errors import capture_exception
from challenge_hub.core.result import Err, Ok, Result
from challenge_hub.models import ChallengeLabel

logger = structlog.get_logger(__name__)


def _fail(db: Session, operation: str, challenge_id: str, exc: SQLAlchemyError) -> Err:
    db.rollback()
    capture_exception(exc, context={"operation": operation, "challenge_id": challenge_id}, level="warning")
    return Err(f"Failed to {operation.replace('_', ' ')}", exc=exc)


def get_challenge_labels(db: Session, challenge_id: str) -> Result[list[ChallengeLabel]]:
    try:
        statement = (
            select(ChallengeLabel)
            .where(ChallengeLabel.challenge_id == challenge_id)
            .order_by(ChallengeLabel.key)
        )
        return Ok(list(db.exec(statement).all()))
    except SQLAlchemyError as e:
        return _fail(db, "fetch_labels", challenge_id, e)


def labels_as_dict(labels: Iterable[ChallengeLabel]) -> dict[str, str]:
    return {label.key: label.value for label in labels}


def _upsert(db: Session, challenge_id: str, key: str, value: str) -> ChallengeLabel:
    label = db.exec(
        select(ChallengeLabel)
        .where(ChallengeLabel.challenge_id == challenge_id)
        .where(ChallengeLabel.key == key)
    ).first()
    if label is None:
        label = ChallengeLabel(challenge_id=challenge_id, key=key, value=value)
    else:
        label.value = value
    db.add(label)
    return label


def set_label(db: Session, challenge_id: str, key: str, value: str) -> Result[ChallengeLabel]:
    """Create or replace the label ``key`` for a challenge."""
    try:
        label = _upsert(db, challenge_id, key, value)
        db.commit()
        db.refresh(label)
    except SQLAlchemyError as e:
        return _fail(db, "set_label", challenge_id, e)
    logger.info("Label set", challenge_id=challenge_id, key=key)
    return Ok(label)


def set_labels(db: Session, challenge_id: str, labels: dict[str, str]) -> Result[list[ChallengeLabel]]:
    """Upsert several labels in one transaction."""
    try:
        saved = [_upsert(db, challenge_id, key, value) for key, value in labels.items()]
        db.commit()
        for label in saved:
            db.refresh(label)
    except SQLAlchemyError as e:
        return _fail(db, "set_labels", challenge_id, e)
    logger.info("Labels set", challenge_id=challenge_id, count=len(saved))
    return Ok(saved)


def delete_label(db: Session, challenge_id: str, key: str) -> Result[None]:
    """Remove one override; the page reverts to the default text."""
    try:
        label = db.exec(
            select(ChallengeLabel)
            .where(ChallengeLabel.challenge_id == challenge_id)
            .where(ChallengeLabel.key == key)
        ).first()
        if label is not None:
            db.delete(label)
        db.commit()
    except SQLAlchemyError as e:
        return _fail(db, "delete_label", challenge_id, e)
    return Ok(None)


def delete_all_labels(db: Session, challenge_id: str) -> Result[None]:
    try:
        for label in db.exec(select(ChallengeLabel).where(ChallengeLabel.challenge_id == challenge_id)).all():
            db.delete(label)
        db.commit()
    except SQLAlchemyError as e:
        return _fail(db, "delete_all_labels", challenge_id, e)
    return Ok(None)
