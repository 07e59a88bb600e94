"""
Seed a demo client, challenge and assignments.

Usage: python -m scripts.seed_db
Idempotent: does nothing when the demo challenge slug already exists.
"""

from datetime import timedelta

from sqlmodel import Session, select

from challenge_hub.core.logging_config import get_logger
from challenge_hub.core.typing import utc_now
from challenge_hub.db import get_engine
from challenge_hub.models import Challenge
from challenge_hub.services import content_admin, labels

logger = get_logger(__name__)

DEMO_CHALLENGE_SLUG = "demo-challenge"


def seed_demo(session: Session) -> Challenge:
    existing = session.exec(select(Challenge).where(Challenge.slug == DEMO_CHALLENGE_SLUG)).first()
    if existing:
        print(f"Demo challenge already exists at /c/{existing.slug}")
        return existing

    client = content_admin.create_client(session, "Acme Learning")
    challenge = content_admin.create_challenge(
        session,
        client.id,
        slug=DEMO_CHALLENGE_SLUG,
        internal_name="Acme onboarding 2024",
        public_title="Welcome to Acme",
        description="<p>Five short assignments to get you started.</p>",
        brand_color="#0f766e",
        password_instructions="Ask your team lead for the password.",
    )

    intro = content_admin.create_assignment(
        session,
        "Intro video",
        public_title="Meet the team",
        instructions="Watch the video and note **one** thing that surprised you.",
        media_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    )
    reading = content_admin.create_assignment(
        session,
        "Handbook reading",
        public_title="Read the handbook",
        content_html="<h2>Our values</h2><p>Be kind. Ship often.</p>",
    )
    secret = content_admin.create_assignment(
        session,
        "Locked exercise",
        public_title="Team exercise",
        instructions="Discuss the questions with your group.",
        password="acme",
    )
    scheduled = content_admin.create_assignment(
        session,
        "Week two",
        public_title="Week two kickoff",
        instructions="Coming soon.",
    )

    for assignment in (intro, reading, secret):
        content_admin.add_assignment_usage(session, challenge.id, assignment.id)
    content_admin.add_assignment_usage(
        session, challenge.id, scheduled.id, release_at=utc_now() + timedelta(days=7)
    )

    labels.set_labels(session, challenge.id, {"start_button": "Let's go"})

    logger.info("Demo data seeded", challenge_id=challenge.id)
    print(f"Seeded demo challenge at /c/{challenge.slug}")
    return challenge


if __name__ == "__main__":
    with Session(get_engine()) as session:
        seed_demo(session)
