"""
Tests for admin analytics aggregation and CSV export.

Tests cover:
- Date range parsing
- Overview, per-challenge and per-assignment stats
- Daily view buckets
- CSV export format
- Zero-value fallbacks on read failures
"""

from datetime import date, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from challenge_hub.core.result import Err, Ok
from challenge_hub.services.admin_analytics import (
    DateRange,
    ExportRow,
    OverviewStats,
    empty_daily_buckets,
    export_analytics_csv,
    fetch_event_rows,
    format_csv,
    get_assignment_stats,
    get_challenge_stats,
    get_daily_view_counts,
    get_overview_stats,
)
from challenge_hub.services.analytics import track_challenge_view


def _broken_session() -> MagicMock:
    db = MagicMock()
    db.exec.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
    return db


class TestDateRange:
    """Tests for parsing admin date filters."""

    def test_date_only_bounds_cover_whole_days(self):
        date_range = DateRange.parse("2024-01-01", "2024-01-31")
        assert date_range.lower == datetime(2024, 1, 1, 0, 0)
        assert date_range.upper.date() == date(2024, 1, 31)
        assert date_range.upper > datetime(2024, 1, 31, 23, 59, 59)

    def test_iso_datetimes_normalized_to_utc(self):
        date_range = DateRange.parse("2024-01-01T10:00:00+02:00", "2024-01-02T00:00:00Z")
        assert date_range.lower == datetime(2024, 1, 1, 8, 0)
        assert date_range.upper == datetime(2024, 1, 2, 0, 0)
        assert date_range.lower.tzinfo is None

    def test_invalid_value_raises(self):
        with pytest.raises(ValueError):
            DateRange.parse("yesterday", "2024-01-01")


class TestOverviewStats:
    """Tests for dashboard totals."""

    def test_counts_by_event_type(self, test_session: Session, factory, published):
        challenge = published["challenge"]
        video = published["video"]
        factory.event(challenge, "challenge_view", session_id="s1")
        factory.event(challenge, "challenge_view", session_id="s2")
        factory.event(challenge, "assignment_view", video, session_id="s1")
        factory.event(challenge, "media_play", video, session_id="s1")
        factory.event(challenge, "assignment_complete", video, session_id="s3")
        factory.event(challenge, "password_attempt", published["locked"], session_id="s3")

        stats = get_overview_stats(test_session)
        assert stats == OverviewStats(
            total_challenge_views=2,
            total_assignment_views=1,
            total_media_plays=1,
            total_completions=1,
            unique_sessions=3,
        )

    def test_tracking_a_view_increments_by_exactly_one(self, test_session: Session, published):
        challenge = published["challenge"]
        before = get_overview_stats(test_session).total_challenge_views
        track_challenge_view(test_session, "new-session", challenge.client_id, challenge.id)
        after = get_overview_stats(test_session).total_challenge_views
        assert after == before + 1

    def test_date_range_filters_events(self, test_session: Session, factory, published):
        challenge = published["challenge"]
        factory.event(challenge, created_at=datetime(2024, 1, 15, 12, 0))
        factory.event(challenge, created_at=datetime(2024, 1, 31, 23, 30))
        factory.event(challenge, created_at=datetime(2024, 2, 1, 0, 30))

        stats = get_overview_stats(test_session, DateRange.parse("2024-01-01", "2024-01-31"))
        assert stats.total_challenge_views == 2

    def test_read_failure_returns_zeros(self):
        with patch("challenge_hub.services.admin_analytics.capture_exception") as capture:
            stats = get_overview_stats(_broken_session())
        assert stats == OverviewStats()
        capture.assert_called_once()

    def test_no_database_returns_zeros(self):
        assert get_overview_stats(None) == OverviewStats()


class TestFetchLayer:
    """Tests for the Result-returning reads."""

    def test_ok_result(self, test_session: Session, factory, published):
        factory.event(published["challenge"])
        result = fetch_event_rows(test_session)
        assert isinstance(result, Ok)
        assert len(result.value) == 1

    def test_error_result_rolls_back(self):
        db = _broken_session()
        with patch("challenge_hub.services.admin_analytics.capture_exception"):
            result = fetch_event_rows(db)
        assert isinstance(result, Err)
        assert result.unwrap_or([]) == []
        db.rollback.assert_called_once()


class TestChallengeStats:
    """Tests for per-challenge stats."""

    def test_sorted_by_views_and_archived_excluded(self, test_session: Session, factory, published):
        onboarding = published["challenge"]
        other = factory.challenge(published["client"], slug="second", internal_name="Second")
        archived = factory.challenge(published["client"], slug="old", is_archived=True)

        factory.event(other, session_id="a")
        factory.event(other, session_id="b")
        factory.event(onboarding, session_id="a")
        factory.event(archived, session_id="a")

        stats = get_challenge_stats(test_session)
        assert [s.challenge_id for s in stats] == [other.id, onboarding.id]
        assert stats[0].total_views == 2
        assert stats[0].unique_sessions == 2
        assert stats[0].client_name == "Acme"
        assert stats[1].challenge_name == "Welcome"

    def test_range_without_events_lists_zeroed_challenges(self, test_session: Session, factory, published):
        factory.event(published["challenge"], created_at=datetime(2024, 3, 1, 12, 0))

        stats = get_challenge_stats(test_session, DateRange.parse("2020-01-01", "2020-01-31"))
        assert len(stats) == 1
        assert stats[0].total_views == 0
        assert stats[0].unique_sessions == 0

    def test_read_failure_returns_empty_list(self):
        with patch("challenge_hub.services.admin_analytics.capture_exception"):
            assert get_challenge_stats(_broken_session()) == []


class TestAssignmentStats:
    """Tests for per-assignment stats."""

    def test_counts_per_assignment_in_usage_order(self, test_session: Session, factory, published):
        challenge = published["challenge"]
        video = published["video"]
        locked = published["locked"]

        factory.event(challenge, "assignment_view", video, session_id="a")
        factory.event(challenge, "assignment_view", video, session_id="b")
        factory.event(challenge, "media_play", video, session_id="a", metadata={"media_type": "youtube"})
        factory.event(challenge, "assignment_complete", video, session_id="a")
        factory.event(challenge, "password_attempt", locked, metadata={"success": False})
        factory.event(challenge, "password_attempt", locked, metadata={"success": True})
        factory.event(challenge, "challenge_view", session_id="z")

        stats = get_assignment_stats(test_session, challenge.id)
        assert [s.assignment_id for s in stats][:3] == [video.id, published["reading"].id, locked.id]

        video_stats = stats[0]
        assert video_stats.assignment_title == "Intro"
        assert video_stats.views == 2
        assert video_stats.unique_sessions == 2
        assert video_stats.media_plays == 1
        assert video_stats.completions == 1

        locked_stats = stats[2]
        assert locked_stats.password_attempts == 2
        assert locked_stats.password_successes == 1
        assert stats[1].views == 0


class TestDailyViewCounts:
    """Tests for the daily views chart data."""

    def test_returns_days_plus_one_buckets(self, test_session: Session):
        now = datetime(2024, 6, 15, 12, 0)
        buckets = get_daily_view_counts(test_session, days=7, now=now)
        assert len(buckets) == 8
        assert buckets[0].date == "2024-06-08"
        assert buckets[-1].date == "2024-06-15"
        assert all(b.views == 0 for b in buckets)

    def test_views_bucketed_by_day(self, test_session: Session, factory, published):
        challenge = published["challenge"]
        now = datetime(2024, 6, 15, 12, 0)
        factory.event(challenge, "challenge_view", session_id="a", created_at=datetime(2024, 6, 14, 9, 0))
        factory.event(challenge, "assignment_view", published["video"], session_id="a", created_at=datetime(2024, 6, 14, 9, 5))
        factory.event(challenge, "challenge_view", session_id="b", created_at=datetime(2024, 6, 15, 8, 0))
        factory.event(challenge, "media_play", published["video"], created_at=datetime(2024, 6, 15, 8, 1))
        factory.event(challenge, "challenge_view", created_at=datetime(2024, 5, 1, 8, 0))

        buckets = {b.date: b for b in get_daily_view_counts(test_session, challenge.id, days=3, now=now)}
        assert buckets["2024-06-14"].views == 2
        assert buckets["2024-06-14"].unique_sessions == 1
        assert buckets["2024-06-15"].views == 1
        assert buckets["2024-06-12"].views == 0
        assert sum(b.views for b in buckets.values()) == 3

    def test_read_failure_returns_zero_buckets(self):
        with patch("challenge_hub.services.admin_analytics.capture_exception"):
            buckets = get_daily_view_counts(_broken_session(), days=30)
        assert len(buckets) == 31
        assert all(b.views == 0 for b in buckets)

    def test_empty_buckets(self):
        buckets = empty_daily_buckets(0, date(2024, 1, 1))
        assert [b.date for b in buckets] == ["2024-01-01"]


class TestCsvExport:
    """Tests for the analytics CSV export."""

    def test_format_quotes_fields_and_escapes_quotes(self):
        rows = [
            ExportRow(datetime(2024, 1, 2, 3, 4, 5), "challenge_view", 'O"Brien', "Welcome", "", "s1"),
            ExportRow(datetime(2024, 1, 1, 0, 0), "assignment_view", "Acme", "Welcome", "Intro", "s2"),
        ]
        lines = format_csv(rows).split("\n")

        assert len(lines) == 3
        assert lines[0] == "Date,Event Type,Client,Challenge,Assignment,Session ID"
        assert lines[1].startswith('"2024-01-02T03:04:05+00:00","challenge_view","O""Brien"')
        assert lines[2].endswith('"Intro","s2"')

    def test_export_newest_first(self, test_session: Session, factory, published):
        challenge = published["challenge"]
        factory.event(challenge, session_id="old", created_at=datetime(2024, 1, 1, 8, 0))
        factory.event(challenge, "assignment_view", published["video"], session_id="new", created_at=datetime(2024, 1, 2, 8, 0))

        lines = export_analytics_csv(test_session).split("\n")
        assert len(lines) == 3
        assert '"Intro","new"' in lines[1]
        assert lines[2].endswith('"Welcome","","old"')

    def test_export_filters_by_challenge(self, test_session: Session, factory, published):
        other = factory.challenge(published["client"], slug="other")
        factory.event(published["challenge"])
        factory.event(other)
        lines = export_analytics_csv(test_session, challenge_id=other.id).split("\n")
        assert len(lines) == 2

    def test_export_truncated_at_limit(self, test_session: Session, factory, published):
        challenge = published["challenge"]
        base = datetime(2024, 1, 1)
        for i in range(5):
            factory.event(challenge, session_id=f"s{i}", created_at=base + timedelta(hours=i))

        with patch("challenge_hub.services.admin_analytics.settings") as mock_settings:
            mock_settings.ANALYTICS_EXPORT_LIMIT = 3
            lines = export_analytics_csv(test_session).split("\n")

        assert len(lines) == 4
        assert lines[1].endswith('"s4"')

    def test_export_failure_returns_empty_string(self):
        with patch("challenge_hub.services.admin_analytics.capture_exception"):
            assert export_analytics_csv(_broken_session()) == ""
