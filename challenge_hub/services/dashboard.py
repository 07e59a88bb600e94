"""
Admin dashboard numbers and recent activity feed.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from challenge_hub.core.errors import capture_exception
from challenge_hub.core.typing import col, utc_now
from challenge_hub.models import AnalyticsEvent, Assignment, Challenge, Client
from challenge_hub.models.analytics import EventType

logger = structlog.get_logger(__name__)


@dataclass
class DashboardStats:
    total_clients: int = 0
    active_challenges: int = 0
    total_assignments: int = 0
    this_month_views: int = 0


@dataclass
class RecentActivity:
    id: str
    type: str  # client_created, challenge_created, challenge_archived, assignment_created
    title: str
    timestamp: datetime


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def get_dashboard_stats(db: Optional[Session], now: Optional[datetime] = None) -> DashboardStats:
    if db is None:
        logger.warning("Dashboard stats requested without database configuration")
        return DashboardStats()

    now = now or utc_now()
    try:
        return DashboardStats(
            total_clients=db.exec(select(func.count()).select_from(Client)).one(),
            active_challenges=db.exec(
                select(func.count()).select_from(Challenge).where(col(Challenge.is_archived).is_(False))
            ).one(),
            total_assignments=db.exec(select(func.count()).select_from(Assignment)).one(),
            this_month_views=db.exec(
                select(func.count())
                .select_from(AnalyticsEvent)
                .where(AnalyticsEvent.event_type == EventType.CHALLENGE_VIEW.value)
                .where(col(AnalyticsEvent.created_at) >= start_of_month(now))
            ).one(),
        )
    except SQLAlchemyError as e:
        db.rollback()
        capture_exception(e, context={"operation": "dashboard_stats"}, level="warning")
        return DashboardStats()


def get_recent_activity(db: Optional[Session], limit: int = 5) -> list[RecentActivity]:
    """Latest created clients, challenges and assignments, newest first."""
    if db is None:
        return []

    try:
        clients = db.exec(select(Client).order_by(col(Client.created_at).desc()).limit(limit)).all()
        challenges = db.exec(select(Challenge).order_by(col(Challenge.created_at).desc()).limit(limit)).all()
        assignments = db.exec(select(Assignment).order_by(col(Assignment.created_at).desc()).limit(limit)).all()
    except SQLAlchemyError as e:
        db.rollback()
        capture_exception(e, context={"operation": "recent_activity"}, level="warning")
        return []

    activities = [
        RecentActivity(
            id=f"client-{client.id}",
            type="client_created",
            title=f'Client "{client.name}" created',
            timestamp=client.created_at,
        )
        for client in clients
    ]
    for challenge in challenges:
        verb = "archived" if challenge.is_archived else "created"
        activities.append(
            RecentActivity(
                id=f"challenge-{challenge.id}",
                type=f"challenge_{verb}",
                title=f'Challenge "{challenge.internal_name}" {verb}',
                timestamp=challenge.created_at,
            )
        )
    activities.extend(
        RecentActivity(
            id=f"assignment-{assignment.id}",
            type="assignment_created",
            title=f'Assignment "{assignment.internal_title}" created',
            timestamp=assignment.created_at,
        )
        for assignment in assignments
    )

    activities.sort(key=lambda a: a.timestamp, reverse=True)
    return activities[:limit]
