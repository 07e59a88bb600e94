"""
Queries behind the public challenge and assignment pages.

Joined rows are turned into small typed records right after fetch, so the
page code never deals with raw result tuples.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from challenge_hub.core.typing import col, utc_now
from challenge_hub.models import Assignment, AssignmentUsage, Challenge, Client, Sprint

# First path segments that are never treated as a challenge/assignment slug
RESERVED_SLUGS = frozenset(
    {
        "admin",
        "participant",
        "sign-in",
        "sign-up",
        "api",
        "c",
        "a",
        "_next",
        "favicon.ico",
        "favicon.svg",
        "health",
    }
)


@dataclass
class PublicChallenge:
    challenge: Challenge
    client: Optional[Client]


@dataclass
class PendingUsages:
    count: int
    next_release_at: Optional[datetime]


@dataclass
class AssignmentNavContext:
    challenge: Challenge
    client: Optional[Client]
    usage_id: str
    sprint_id: Optional[str]
    is_released: bool
    release_at: Optional[datetime]


@dataclass
class LegacyMatch:
    kind: str  # "challenge" or "assignment"
    slug: str


def get_public_challenge(db: Session, slug: str) -> Optional[PublicChallenge]:
    statement = (
        select(Challenge, Client)
        .join(Client, col(Client.id) == col(Challenge.client_id), isouter=True)
        .where(Challenge.slug == slug)
        .where(col(Challenge.is_archived).is_(False))
    )
    row = db.exec(statement).first()
    if row is None:
        return None
    challenge, client = row
    return PublicChallenge(challenge=challenge, client=client)


def _released(now: datetime):
    return or_(col(AssignmentUsage.release_at).is_(None), col(AssignmentUsage.release_at) <= now)


def get_public_usages(
    db: Session, challenge_id: str, now: Optional[datetime] = None
) -> list[tuple[AssignmentUsage, Assignment]]:
    """Visible usages whose release time has passed, in position order."""
    now = now or utc_now()
    statement = (
        select(AssignmentUsage, Assignment)
        .join(Assignment, col(Assignment.id) == col(AssignmentUsage.assignment_id))
        .where(AssignmentUsage.challenge_id == challenge_id)
        .where(col(AssignmentUsage.is_visible).is_(True))
        .where(_released(now))
        .order_by(col(AssignmentUsage.position), col(AssignmentUsage.id))
    )
    return [(usage, assignment) for usage, assignment in db.exec(statement).all()]


def get_pending_usages(db: Session, challenge_id: str, now: Optional[datetime] = None) -> PendingUsages:
    """Count and earliest release time of visible usages scheduled for later."""
    now = now or utc_now()
    statement = (
        select(AssignmentUsage)
        .where(AssignmentUsage.challenge_id == challenge_id)
        .where(col(AssignmentUsage.is_visible).is_(True))
        .where(col(AssignmentUsage.release_at) > now)
        .order_by(col(AssignmentUsage.release_at))
    )
    pending = db.exec(statement).all()
    return PendingUsages(
        count=len(pending),
        next_release_at=pending[0].release_at if pending else None,
    )


def get_public_sprints(db: Session, challenge_id: str) -> list[Sprint]:
    statement = select(Sprint).where(Sprint.challenge_id == challenge_id).order_by(col(Sprint.position))
    return list(db.exec(statement).all())


def get_public_assignment(db: Session, slug: str) -> Optional[Assignment]:
    return db.exec(select(Assignment).where(Assignment.slug == slug)).first()


def get_assignment_nav_context(
    db: Session,
    assignment: Assignment,
    from_slug: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[AssignmentNavContext]:
    """
    Resolve the challenge an assignment is being viewed in.

    Prefers the challenge named by ``from_slug`` (the ?from= query parameter);
    falls back to the first non-archived challenge using the assignment.
    Returns None for library assignments that are not used anywhere.
    """
    now = now or utc_now()
    statement = (
        select(AssignmentUsage, Challenge, Client)
        .join(Challenge, col(Challenge.id) == col(AssignmentUsage.challenge_id))
        .join(Client, col(Client.id) == col(Challenge.client_id), isouter=True)
        .where(AssignmentUsage.assignment_id == assignment.id)
        .where(col(Challenge.is_archived).is_(False))
        .order_by(col(Challenge.created_at), col(AssignmentUsage.position))
    )
    rows = db.exec(statement).all()
    if not rows:
        return None

    chosen = rows[0]
    if from_slug:
        for row in rows:
            if row[1].slug == from_slug:
                chosen = row
                break

    usage, challenge, client = chosen
    return AssignmentNavContext(
        challenge=challenge,
        client=client,
        usage_id=usage.id,
        sprint_id=usage.sprint_id,
        is_released=usage.is_released(now),
        release_at=usage.release_at,
    )


def resolve_legacy_slug(db: Session, slug: str) -> Optional[LegacyMatch]:
    """Root-level URLs from the old platform: probe challenges, then assignments."""
    if not slug or slug.lower() in RESERVED_SLUGS:
        return None

    challenge = db.exec(select(Challenge.id).where(Challenge.slug == slug)).first()
    if challenge is not None:
        return LegacyMatch(kind="challenge", slug=slug)

    assignment = db.exec(select(Assignment.id).where(Assignment.slug == slug)).first()
    if assignment is not None:
        return LegacyMatch(kind="assignment", slug=slug)

    return None
