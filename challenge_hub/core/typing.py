"""
Type helpers for SQLAlchemy/SQLModel compatibility with type checkers.

SQLModel fields are declared with Python types (e.g., `slug: str`) but at the
class level they're actually InstrumentedAttribute descriptors with SQLAlchemy
column methods like .desc(), .in_(), .is_(), etc.
"""

from typing import TYPE_CHECKING, Annotated, Optional, TypeVar
from datetime import datetime, timezone

from pydantic import NaiveDatetime

if TYPE_CHECKING:
    from sqlalchemy.orm.attributes import InstrumentedAttribute

T = TypeVar("T")

# Column type for stored timestamps: naive, always UTC. Maps to
# DateTime(timezone=False) instead of SQLModel's aware UTC column.
UtcNaiveDatetime = Annotated[datetime, NaiveDatetime]


def col(attr: T) -> "InstrumentedAttribute[T]":
    """
    Type helper for SQLAlchemy column operations in queries.

    At runtime this is a no-op - it just returns the input unchanged.

    Usage:
        select(AnalyticsEvent).order_by(col(AnalyticsEvent.created_at).desc())
    """
    return attr  # type: ignore[return-value]


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    Timestamps are stored without tzinfo (always UTC) so that Postgres
    and SQLite compare them the same way.

    Usage:
        created_at: UtcNaiveDatetime = Field(default_factory=utc_now)
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming datetime to the stored form (naive UTC)."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


__all__ = [
    "col",
    "UtcNaiveDatetime",
    "utc_now",
    "to_utc_naive",
]
