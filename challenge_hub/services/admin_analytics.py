"""
Admin analytics aggregation.

All numbers are derived by re-reading the event log and grouping in memory:
counts are per-event-type lengths, uniqueness is the size of the set of
session ids. Every read goes through a fetch function returning a Result;
the public functions map Err to a zero value so the dashboard always
renders.
"""

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Optional, TypeVar, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from challenge_hub.core.config import settings
from challenge_hub.core.errors import capture_exception
from challenge_hub.core.result import Err, Ok, Result
from challenge_hub.core.typing import col, to_utc_naive, utc_now
from challenge_hub.models import AnalyticsEvent, Assignment, AssignmentUsage, Challenge, Client
from challenge_hub.models.analytics import VIEW_EVENTS, EventType

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CSV_HEADER = ["Date", "Event Type", "Client", "Challenge", "Assignment", "Session ID"]


# --- Date ranges ----------------------------------------------------------


def _parse_bound(value: Union[str, date, datetime]) -> Union[date, datetime]:
    if isinstance(value, (date, datetime)):
        return value
    value = value.strip()
    if len(value) == 10:
        return date.fromisoformat(value)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive date range. A date-only end covers the whole day, so
    ``DateRange(date(2024, 1, 1), date(2024, 1, 31))`` includes events at
    2024-01-31 23:59.
    """

    start: Union[date, datetime]
    end: Union[date, datetime]

    @classmethod
    def parse(cls, start: Union[str, date, datetime], end: Union[str, date, datetime]) -> "DateRange":
        """Accepts ``YYYY-MM-DD`` or ISO-8601 datetimes; raises ValueError otherwise."""
        return cls(start=_parse_bound(start), end=_parse_bound(end))

    @property
    def lower(self) -> datetime:
        if isinstance(self.start, datetime):
            return to_utc_naive(self.start)
        return datetime.combine(self.start, time.min)

    @property
    def upper(self) -> datetime:
        if isinstance(self.end, datetime):
            return to_utc_naive(self.end)
        return datetime.combine(self.end, time.max)


def _in_range(statement, date_range: Optional[DateRange]):
    if date_range is None:
        return statement
    return statement.where(col(AnalyticsEvent.created_at) >= date_range.lower).where(
        col(AnalyticsEvent.created_at) <= date_range.upper
    )


# --- Result types ---------------------------------------------------------


@dataclass
class OverviewStats:
    total_challenge_views: int = 0
    total_assignment_views: int = 0
    total_media_plays: int = 0
    total_completions: int = 0
    unique_sessions: int = 0


@dataclass
class ChallengeStats:
    challenge_id: str
    challenge_name: str
    client_name: str
    total_views: int = 0
    unique_sessions: int = 0
    assignment_views: int = 0
    media_plays: int = 0
    completions: int = 0


@dataclass
class AssignmentStats:
    assignment_id: str
    assignment_title: str
    views: int = 0
    unique_sessions: int = 0
    media_plays: int = 0
    completions: int = 0
    password_attempts: int = 0
    password_successes: int = 0


@dataclass
class DailyViewCount:
    date: str  # YYYY-MM-DD (UTC)
    views: int = 0
    unique_sessions: int = 0


# --- Normalized rows ------------------------------------------------------


@dataclass
class EventRow:
    event_type: str
    challenge_id: str
    assignment_id: Optional[str]
    session_id: str
    created_at: datetime
    metadata: Optional[dict[str, Any]] = None


@dataclass
class ChallengeRow:
    id: str
    name: str
    client_name: str


@dataclass
class AssignmentRow:
    id: str
    title: str


@dataclass
class ExportRow:
    created_at: datetime
    event_type: str
    client_name: str
    challenge_name: str
    assignment_title: str
    session_id: str


# --- Fetch layer ----------------------------------------------------------


def _fetch(db: Optional[Session], operation: str, query: Callable[[Session], T], **context) -> Result[T]:
    """Run a read and wrap the outcome; errors are captured here, never raised."""
    if db is None:
        return Err("Database is not configured")
    try:
        return Ok(query(db))
    except SQLAlchemyError as e:
        db.rollback()
        capture_exception(e, context={"operation": operation, **context}, level="warning")
        return Err(f"{operation} failed", exc=e)


def fetch_event_rows(
    db: Optional[Session],
    date_range: Optional[DateRange] = None,
    challenge_id: Optional[str] = None,
    event_types: Optional[tuple] = None,
    assignment_scoped: bool = False,
) -> Result[list[EventRow]]:
    def query(session: Session) -> list[EventRow]:
        statement = select(
            AnalyticsEvent.event_type,
            AnalyticsEvent.challenge_id,
            AnalyticsEvent.assignment_id,
            AnalyticsEvent.session_id,
            AnalyticsEvent.created_at,
            AnalyticsEvent.event_metadata,
        )
        statement = _in_range(statement, date_range)
        if challenge_id:
            statement = statement.where(AnalyticsEvent.challenge_id == challenge_id)
        if event_types:
            statement = statement.where(col(AnalyticsEvent.event_type).in_([EventType(t).value for t in event_types]))
        if assignment_scoped:
            statement = statement.where(col(AnalyticsEvent.assignment_id).is_not(None))
        return [
            EventRow(
                event_type=event_type,
                challenge_id=row_challenge_id,
                assignment_id=assignment_id,
                session_id=session_id,
                created_at=created_at,
                metadata=metadata,
            )
            for event_type, row_challenge_id, assignment_id, session_id, created_at, metadata in session.exec(
                statement
            ).all()
        ]

    return _fetch(db, "fetch_events", query, challenge_id=challenge_id)


def fetch_active_challenges(db: Optional[Session]) -> Result[list[ChallengeRow]]:
    def query(session: Session) -> list[ChallengeRow]:
        statement = (
            select(Challenge, Client.name)
            .join(Client, col(Client.id) == col(Challenge.client_id), isouter=True)
            .where(col(Challenge.is_archived).is_(False))
        )
        return [
            ChallengeRow(
                id=challenge.id,
                name=challenge.display_name,
                client_name=client_name or "Unknown",
            )
            for challenge, client_name in session.exec(statement).all()
        ]

    return _fetch(db, "fetch_challenges", query)


def fetch_challenge_assignments(db: Optional[Session], challenge_id: str) -> Result[list[AssignmentRow]]:
    def query(session: Session) -> list[AssignmentRow]:
        statement = (
            select(Assignment)
            .join(AssignmentUsage, col(AssignmentUsage.assignment_id) == col(Assignment.id))
            .where(AssignmentUsage.challenge_id == challenge_id)
            .order_by(col(AssignmentUsage.position))
        )
        return [AssignmentRow(id=a.id, title=a.display_title) for a in session.exec(statement).all()]

    return _fetch(db, "fetch_usages", query, challenge_id=challenge_id)


def fetch_export_rows(
    db: Optional[Session],
    challenge_id: Optional[str] = None,
    date_range: Optional[DateRange] = None,
    limit: Optional[int] = None,
) -> Result[list[ExportRow]]:
    def query(session: Session) -> list[ExportRow]:
        statement = (
            select(
                AnalyticsEvent.created_at,
                AnalyticsEvent.event_type,
                AnalyticsEvent.session_id,
                Client.name,
                Challenge.public_title,
                Challenge.internal_name,
                Assignment.public_title,
                Assignment.internal_title,
            )
            .join(Client, col(Client.id) == col(AnalyticsEvent.client_id), isouter=True)
            .join(Challenge, col(Challenge.id) == col(AnalyticsEvent.challenge_id), isouter=True)
            .join(Assignment, col(Assignment.id) == col(AnalyticsEvent.assignment_id), isouter=True)
        )
        if challenge_id:
            statement = statement.where(AnalyticsEvent.challenge_id == challenge_id)
        statement = (
            _in_range(statement, date_range)
            .order_by(col(AnalyticsEvent.created_at).desc(), col(AnalyticsEvent.id).desc())
            .limit(limit or settings.ANALYTICS_EXPORT_LIMIT)
        )
        return [
            ExportRow(
                created_at=created_at,
                event_type=event_type,
                client_name=client_name or "",
                challenge_name=challenge_public or challenge_internal or "",
                assignment_title=assignment_public or assignment_internal or "",
                session_id=session_id,
            )
            for (
                created_at,
                event_type,
                session_id,
                client_name,
                challenge_public,
                challenge_internal,
                assignment_public,
                assignment_internal,
            ) in session.exec(statement).all()
        ]

    return _fetch(db, "export_events", query, challenge_id=challenge_id)


# --- Aggregation ----------------------------------------------------------


def _count(events: list[EventRow], event_type: EventType) -> int:
    return sum(1 for e in events if e.event_type == event_type.value)


def _unique_sessions(events: list[EventRow]) -> int:
    return len({e.session_id for e in events})


def summarize_overview(events: list[EventRow]) -> OverviewStats:
    return OverviewStats(
        total_challenge_views=_count(events, EventType.CHALLENGE_VIEW),
        total_assignment_views=_count(events, EventType.ASSIGNMENT_VIEW),
        total_media_plays=_count(events, EventType.MEDIA_PLAY),
        total_completions=_count(events, EventType.ASSIGNMENT_COMPLETE),
        unique_sessions=_unique_sessions(events),
    )


def get_overview_stats(db: Optional[Session], date_range: Optional[DateRange] = None) -> OverviewStats:
    """Totals across all challenges; all zeros when the events cannot be read."""
    events = fetch_event_rows(db, date_range).unwrap_or(None)
    if events is None:
        return OverviewStats()
    return summarize_overview(events)


def get_challenge_stats(db: Optional[Session], date_range: Optional[DateRange] = None) -> list[ChallengeStats]:
    """
    Per-challenge stats for every non-archived challenge, busiest first.

    Only events are filtered by the date range; a challenge without events in
    the range is still listed with zero counts.
    """
    challenges = fetch_active_challenges(db)
    if not challenges.ok:
        return []
    events = fetch_event_rows(db, date_range)
    if not events.ok:
        return []

    by_challenge: dict[str, list[EventRow]] = {}
    for event in events.value:
        by_challenge.setdefault(event.challenge_id, []).append(event)

    stats = []
    for challenge in challenges.value:
        challenge_events = by_challenge.get(challenge.id, [])
        stats.append(
            ChallengeStats(
                challenge_id=challenge.id,
                challenge_name=challenge.name,
                client_name=challenge.client_name,
                total_views=_count(challenge_events, EventType.CHALLENGE_VIEW),
                unique_sessions=_unique_sessions(challenge_events),
                assignment_views=_count(challenge_events, EventType.ASSIGNMENT_VIEW),
                media_plays=_count(challenge_events, EventType.MEDIA_PLAY),
                completions=_count(challenge_events, EventType.ASSIGNMENT_COMPLETE),
            )
        )
    stats.sort(key=lambda s: s.total_views, reverse=True)
    return stats


def get_assignment_stats(
    db: Optional[Session], challenge_id: str, date_range: Optional[DateRange] = None
) -> list[AssignmentStats]:
    """Per-assignment stats inside one challenge, in usage order."""
    assignments = fetch_challenge_assignments(db, challenge_id)
    if not assignments.ok:
        return []
    events = fetch_event_rows(db, date_range, challenge_id=challenge_id, assignment_scoped=True)
    if not events.ok:
        return []

    by_assignment: dict[str, list[EventRow]] = {}
    for event in events.value:
        by_assignment.setdefault(event.assignment_id or "", []).append(event)

    stats = []
    for assignment in assignments.value:
        assignment_events = by_assignment.get(assignment.id, [])
        attempts = [e for e in assignment_events if e.event_type == EventType.PASSWORD_ATTEMPT.value]
        stats.append(
            AssignmentStats(
                assignment_id=assignment.id,
                assignment_title=assignment.title,
                views=_count(assignment_events, EventType.ASSIGNMENT_VIEW),
                unique_sessions=_unique_sessions(assignment_events),
                media_plays=_count(assignment_events, EventType.MEDIA_PLAY),
                completions=_count(assignment_events, EventType.ASSIGNMENT_COMPLETE),
                password_attempts=len(attempts),
                password_successes=sum(1 for e in attempts if (e.metadata or {}).get("success") is True),
            )
        )
    return stats


def empty_daily_buckets(days: int, today: Optional[date] = None) -> list[DailyViewCount]:
    today = today or utc_now().date()
    start = today - timedelta(days=days)
    return [DailyViewCount(date=(start + timedelta(days=i)).isoformat()) for i in range(days + 1)]


def get_daily_view_counts(
    db: Optional[Session],
    challenge_id: Optional[str] = None,
    days: int = 30,
    now: Optional[datetime] = None,
) -> list[DailyViewCount]:
    """
    View counts per UTC day for ``[today - days, today]``.

    Always returns exactly ``days + 1`` buckets in date order; days without
    views (or a failed read) show up as zeros.
    """
    days = max(days, 0)
    now = now or utc_now()
    buckets = empty_daily_buckets(days, now.date())

    start = datetime.combine(now.date() - timedelta(days=days), time.min)
    result = fetch_event_rows(
        db,
        DateRange(start=start, end=now),
        challenge_id=challenge_id,
        event_types=VIEW_EVENTS,
    )
    if not result.ok:
        return buckets

    by_date = {bucket.date: bucket for bucket in buckets}
    sessions: dict[str, set[str]] = {bucket.date: set() for bucket in buckets}
    for event in result.value:
        key = event.created_at.date().isoformat()
        bucket = by_date.get(key)
        if bucket is None:
            continue
        bucket.views += 1
        sessions[key].add(event.session_id)

    for bucket in buckets:
        bucket.unique_sessions = len(sessions[bucket.date])
    return buckets


def format_csv(rows: list[ExportRow]) -> str:
    """Header unquoted, every data field quoted with embedded quotes doubled."""
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(CSV_HEADER)
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(
            [
                row.created_at.replace(tzinfo=timezone.utc).isoformat(),
                row.event_type,
                row.client_name,
                row.challenge_name,
                row.assignment_title,
                row.session_id,
            ]
        )
    return buffer.getvalue().rstrip("\n")


def export_analytics_csv(
    db: Optional[Session],
    challenge_id: Optional[str] = None,
    date_range: Optional[DateRange] = None,
) -> str:
    """Newest events first, truncated at ANALYTICS_EXPORT_LIMIT rows; "" when the read fails."""
    result = fetch_export_rows(db, challenge_id, date_range)
    if not result.ok:
        return ""
    rows = result.value
    if len(rows) >= settings.ANALYTICS_EXPORT_LIMIT:
        logger.info("Analytics export truncated", limit=settings.ANALYTICS_EXPORT_LIMIT)
    return format_csv(rows)
