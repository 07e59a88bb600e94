"""
Admin write operations on clients, challenges and assignments.

Slugs are case-sensitive and unique per table. A missing slug gets a random
7-character one; a custom slug must match ``[A-Za-z0-9-]+`` and may not
shadow a reserved root path such as ``admin`` or ``health``.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from sqlmodel import Session, func, select

from challenge_hub.core.typing import col
from challenge_hub.models import Assignment, AssignmentUsage, Challenge, Client, Sprint
from challenge_hub.models.slugs import generate_slug, is_valid_slug
from challenge_hub.services.access_gate import hash_password
from challenge_hub.services.public import RESERVED_SLUGS

logger = structlog.get_logger(__name__)

MAX_SLUG_ATTEMPTS = 10


class InvalidSlugError(ValueError):
    pass


class SlugConflictError(ValueError):
    pass


class NotFoundError(LookupError):
    pass


def _slug_taken(db: Session, model, slug: str, exclude_id: Optional[str] = None) -> bool:
    statement = select(model.id).where(model.slug == slug)
    if exclude_id:
        statement = statement.where(model.id != exclude_id)
    return db.exec(statement).first() is not None


def resolve_slug(db: Session, model, slug: Optional[str], exclude_id: Optional[str] = None) -> str:
    """Validate a custom slug or generate a free random one."""
    if slug:
        if not is_valid_slug(slug):
            raise InvalidSlugError("Slug may only contain letters, digits and hyphens")
        if slug.lower() in RESERVED_SLUGS:
            raise InvalidSlugError(f"Slug '{slug}' is reserved")
        if _slug_taken(db, model, slug, exclude_id):
            raise SlugConflictError(f"Slug '{slug}' is already in use")
        return slug

    for _ in range(MAX_SLUG_ATTEMPTS):
        candidate = generate_slug()
        if not _slug_taken(db, model, candidate):
            return candidate
    raise SlugConflictError("Could not generate a unique slug")


# --- Clients --------------------------------------------------------------


def list_clients(db: Session) -> list[Client]:
    return list(db.exec(select(Client).order_by(col(Client.name))).all())


def create_client(db: Session, name: str, logo_url: Optional[str] = None) -> Client:
    client = Client(name=name.strip(), logo_url=logo_url or None)
    db.add(client)
    db.commit()
    db.refresh(client)
    logger.info("Client created", client_id=client.id)
    return client


def get_client_with_challenges(db: Session, client_id: str) -> tuple[Client, list[Challenge]]:
    client = db.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client not found")
    challenges = db.exec(
        select(Challenge).where(Challenge.client_id == client_id).order_by(col(Challenge.created_at).desc())
    ).all()
    return client, list(challenges)


# --- Challenges -----------------------------------------------------------


def list_challenges(db: Session, include_archived: bool = False) -> list[tuple[Challenge, Optional[Client]]]:
    statement = select(Challenge, Client).join(Client, col(Client.id) == col(Challenge.client_id), isouter=True)
    if not include_archived:
        statement = statement.where(col(Challenge.is_archived).is_(False))
    statement = statement.order_by(col(Challenge.created_at).desc())
    return [(challenge, client) for challenge, client in db.exec(statement).all()]


def create_challenge(db: Session, client_id: str, slug: Optional[str] = None, **fields: Any) -> Challenge:
    if db.get(Client, client_id) is None:
        raise NotFoundError("Client not found")
    challenge = Challenge(client_id=client_id, slug=resolve_slug(db, Challenge, slug), **fields)
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    logger.info("Challenge created", challenge_id=challenge.id, slug=challenge.slug)
    return challenge


def archive_challenge(db: Session, challenge_id: str, archived: bool = True) -> Challenge:
    challenge = db.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge not found")
    challenge.is_archived = archived
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    logger.info("Challenge archive state changed", challenge_id=challenge_id, archived=archived)
    return challenge


def create_sprint(
    db: Session,
    challenge_id: str,
    name: str,
    position: Optional[int] = None,
    starts_at: Optional[datetime] = None,
    ends_at: Optional[datetime] = None,
    password: Optional[str] = None,
) -> Sprint:
    if db.get(Challenge, challenge_id) is None:
        raise NotFoundError("Challenge not found")
    if position is None:
        position = db.exec(
            select(func.count()).select_from(Sprint).where(Sprint.challenge_id == challenge_id)
        ).one()
    sprint = Sprint(
        challenge_id=challenge_id,
        name=name,
        position=position,
        starts_at=starts_at,
        ends_at=ends_at,
        password_hash=hash_password(password) if password else None,
    )
    db.add(sprint)
    db.commit()
    db.refresh(sprint)
    return sprint


def add_assignment_usage(
    db: Session,
    challenge_id: str,
    assignment_id: str,
    position: Optional[int] = None,
    label: Optional[str] = None,
    is_visible: bool = True,
    release_at: Optional[datetime] = None,
    sprint_id: Optional[str] = None,
) -> AssignmentUsage:
    """Place an assignment in a challenge; appended at the end unless a position is given."""
    if db.get(Challenge, challenge_id) is None:
        raise NotFoundError("Challenge not found")
    if db.get(Assignment, assignment_id) is None:
        raise NotFoundError("Assignment not found")
    if sprint_id:
        sprint = db.get(Sprint, sprint_id)
        if sprint is None or sprint.challenge_id != challenge_id:
            raise NotFoundError("Sprint not found")
    if position is None:
        position = db.exec(
            select(func.count()).select_from(AssignmentUsage).where(AssignmentUsage.challenge_id == challenge_id)
        ).one()

    usage = AssignmentUsage(
        challenge_id=challenge_id,
        assignment_id=assignment_id,
        sprint_id=sprint_id,
        position=position,
        label=label,
        is_visible=is_visible,
        release_at=release_at,
    )
    db.add(usage)
    db.commit()
    db.refresh(usage)
    return usage


# --- Assignments ----------------------------------------------------------


def list_assignments(db: Session) -> list[Assignment]:
    return list(db.exec(select(Assignment).order_by(col(Assignment.created_at).desc())).all())


def create_assignment(
    db: Session,
    internal_title: str,
    slug: Optional[str] = None,
    password: Optional[str] = None,
    **fields: Any,
) -> Assignment:
    assignment = Assignment(
        internal_title=internal_title,
        slug=resolve_slug(db, Assignment, slug),
        password_hash=hash_password(password) if password else None,
        **fields,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Assignment created", assignment_id=assignment.id, slug=assignment.slug)
    return assignment


def update_assignment(
    db: Session,
    assignment_id: str,
    updates: dict[str, Any],
    password: Optional[str] = None,
    remove_password: bool = False,
) -> Assignment:
    """Apply field updates; ``password`` sets a new one, ``remove_password`` clears it."""
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")

    if updates.get("slug"):
        updates["slug"] = resolve_slug(db, Assignment, updates["slug"], exclude_id=assignment_id)
    else:
        updates.pop("slug", None)

    for key, value in updates.items():
        setattr(assignment, key, value)

    if remove_password:
        assignment.password_hash = None
    elif password:
        assignment.password_hash = hash_password(password)

    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Assignment updated", assignment_id=assignment_id, fields=sorted(updates))
    return assignment
