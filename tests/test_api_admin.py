"""
Tests for the admin API.

Tests cover:
- X-Admin-Key protection
- Dashboard and health
- Client, challenge and assignment management
- Slug validation and conflicts
- Analytics reporting and CSV export
"""

from datetime import datetime
from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from challenge_hub.models import AssignmentUsage, ChallengeLabel


class TestAdminAuth:
    """Tests for admin key protection."""

    def test_missing_key_is_403(self, client):
        assert client.get("/admin/clients").status_code == 403

    def test_wrong_key_is_403(self, client):
        assert client.get("/admin/clients", headers={"X-Admin-Key": "nope"}).status_code == 403

    def test_valid_key(self, client, admin_headers):
        assert client.get("/admin/clients", headers=admin_headers).status_code == 200

    def test_unconfigured_key_is_503(self, client, admin_headers):
        with patch("challenge_hub.api.deps.settings") as mock_settings:
            mock_settings.ADMIN_API_KEY = None
            response = client.get("/admin/clients", headers=admin_headers)
        assert response.status_code == 503


class TestDashboard:
    """Tests for the dashboard and health endpoints."""

    def test_dashboard_stats(self, client, admin_headers, factory, published):
        factory.event(published["challenge"])
        factory.challenge(published["client"], slug="old", is_archived=True)

        response = client.get("/admin", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()

        assert body["stats"] == {
            "total_clients": 1,
            "active_challenges": 1,
            "total_assignments": 5,
            "this_month_views": 1,
        }
        assert len(body["recent_activity"]) == 5
        assert body["health"]["database"]["connected"] is True

    def test_health(self, client, admin_headers):
        body = client.get("/admin/health", headers=admin_headers).json()
        assert body["database"] == {"configured": True, "connected": True}
        assert body["tables"] == {"clients": True, "challenges": True, "assignments": True}

    def test_health_without_database(self, admin_headers):
        from fastapi.testclient import TestClient

        from challenge_hub.db import get_optional_session
        from challenge_hub.main import app

        def no_database():
            yield None

        app.dependency_overrides[get_optional_session] = no_database
        try:
            with TestClient(app) as test_client:
                body = test_client.get("/admin/health", headers=admin_headers).json()
                stats = test_client.get("/admin", headers=admin_headers).json()["stats"]
        finally:
            app.dependency_overrides.clear()

        assert body["database"]["configured"] is False
        assert "error" in body["database"]
        assert stats["total_clients"] == 0


class TestClients:
    """Tests for client management."""

    def test_create_and_list(self, client, admin_headers):
        created = client.post("/admin/clients", json={"name": "Globex"}, headers=admin_headers)
        assert created.status_code == 201
        assert created.json()["name"] == "Globex"

        names = [c["name"] for c in client.get("/admin/clients", headers=admin_headers).json()]
        assert names == ["Globex"]

    def test_empty_name_rejected(self, client, admin_headers):
        assert client.post("/admin/clients", json={"name": ""}, headers=admin_headers).status_code == 422

    def test_detail_includes_challenges(self, client, admin_headers, published):
        response = client.get(f"/admin/clients/{published['client'].id}", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Acme"
        assert [c["slug"] for c in body["challenges"]] == ["onboarding"]
        assert body["challenges"][0]["url"] == "/c/onboarding"

    def test_unknown_client_is_404(self, client, admin_headers):
        assert client.get("/admin/clients/missing", headers=admin_headers).status_code == 404


class TestChallenges:
    """Tests for challenge management."""

    def test_create_with_generated_slug(self, client, admin_headers, published):
        response = client.post(
            "/admin/challenges",
            json={"client_id": published["client"].id, "internal_name": "Q3 kickoff"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        slug = response.json()["slug"]
        assert len(slug) == 7
        assert slug.isalnum()

    def test_create_with_custom_slug(self, client, admin_headers, published):
        response = client.post(
            "/admin/challenges",
            json={"client_id": published["client"].id, "internal_name": "Q3", "slug": "q3-kickoff"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["url"] == "/c/q3-kickoff"

    def test_duplicate_slug_is_409(self, client, admin_headers, published):
        response = client.post(
            "/admin/challenges",
            json={"client_id": published["client"].id, "internal_name": "Dup", "slug": "onboarding"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    def test_invalid_slug_is_422(self, client, admin_headers, published):
        response = client.post(
            "/admin/challenges",
            json={"client_id": published["client"].id, "internal_name": "Bad", "slug": "has space"},
            headers=admin_headers,
        )
        assert response.status_code == 422

    def test_reserved_slug_is_422(self, client, admin_headers, published):
        response = client.post(
            "/admin/challenges",
            json={"client_id": published["client"].id, "internal_name": "Ops", "slug": "health"},
            headers=admin_headers,
        )
        assert response.status_code == 422
        assert client.get("/health").json() == {"status": "healthy"}

    def test_unknown_client_is_404(self, client, admin_headers):
        response = client.post(
            "/admin/challenges",
            json={"client_id": "missing", "internal_name": "X"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    def test_archive_hides_from_list_and_public(self, client, admin_headers, published):
        challenge_id = published["challenge"].id
        response = client.post(f"/admin/challenges/{challenge_id}/archive", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_archived"] is True

        assert client.get("/admin/challenges", headers=admin_headers).json() == []
        listed = client.get("/admin/challenges", params={"include_archived": True}, headers=admin_headers).json()
        assert [c["id"] for c in listed] == [challenge_id]
        assert client.get("/c/onboarding").status_code == 404

        restored = client.post(
            f"/admin/challenges/{challenge_id}/archive", json={"archived": False}, headers=admin_headers
        )
        assert restored.json()["is_archived"] is False

    def test_add_sprint_and_usage(self, client, admin_headers, test_session: Session, factory, published):
        challenge_id = published["challenge"].id
        sprint = client.post(
            f"/admin/challenges/{challenge_id}/sprints",
            json={"name": "Week 1", "password": "w1"},
            headers=admin_headers,
        )
        assert sprint.status_code == 201
        assert sprint.json()["has_password"] is True
        assert "password_hash" not in sprint.json()

        extra = factory.assignment(slug="extra")
        usage = client.post(
            f"/admin/challenges/{challenge_id}/usages",
            json={
                "assignment_id": extra.id,
                "sprint_id": sprint.json()["id"],
                "release_at": "2030-01-01T09:00:00+01:00",
            },
            headers=admin_headers,
        )
        assert usage.status_code == 201
        body = usage.json()
        assert body["position"] == 5

        stored = test_session.exec(select(AssignmentUsage).where(AssignmentUsage.id == body["id"])).one()
        assert stored.release_at == datetime(2030, 1, 1, 8, 0)

    def test_usage_with_unknown_assignment_is_404(self, client, admin_headers, published):
        response = client.post(
            f"/admin/challenges/{published['challenge'].id}/usages",
            json={"assignment_id": "missing"},
            headers=admin_headers,
        )
        assert response.status_code == 404


class TestLabelsAdmin:
    """Tests for label overrides through the admin API."""

    def test_put_and_delete_labels(self, client, admin_headers, test_session: Session, published):
        challenge_id = published["challenge"].id
        response = client.put(
            f"/admin/challenges/{challenge_id}/labels",
            json={"labels": {"start_button": "Begin", "done": "Finished"}},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert len(response.json()["labels"]) == 2

        assert client.delete(f"/admin/challenges/{challenge_id}/labels/done", headers=admin_headers).status_code == 200
        public = client.get(f"/api/labels/{challenge_id}").json()["labels"]
        assert [l["key"] for l in public] == ["start_button"]

        assert client.delete(f"/admin/challenges/{challenge_id}/labels", headers=admin_headers).status_code == 200
        assert test_session.exec(select(ChallengeLabel)).all() == []


class TestAssignments:
    """Tests for assignment management."""

    def test_create_with_password_hides_hash(self, client, admin_headers):
        response = client.post(
            "/admin/assignments",
            json={"internal_title": "Quiz", "password": "Secret", "slug": "quiz"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["has_password"] is True
        assert "password_hash" not in body

        unlock = client.post("/a/quiz/unlock", json={"password": "secret"})
        assert unlock.status_code == 200

    def test_list(self, client, admin_headers, published):
        body = client.get("/admin/assignments", headers=admin_headers).json()
        assert len(body) == 5
        assert all("password_hash" not in a for a in body)

    def test_update_fields_and_slug(self, client, admin_headers, published):
        assignment_id = published["reading"].id
        response = client.patch(
            f"/admin/assignments/{assignment_id}",
            json={"public_title": "Reading list", "slug": "reading-list"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["public_title"] == "Reading list"
        assert client.get("/a/reading-list").status_code == 200
        assert client.get("/a/reading").status_code == 404

    def test_update_slug_conflict_is_409(self, client, admin_headers, published):
        response = client.patch(
            f"/admin/assignments/{published['reading'].id}",
            json={"slug": "locked"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    def test_keeping_own_slug_is_allowed(self, client, admin_headers, published):
        response = client.patch(
            f"/admin/assignments/{published['reading'].id}",
            json={"slug": "reading"},
            headers=admin_headers,
        )
        assert response.status_code == 200

    @pytest.mark.parametrize("title", [None, "", "   "])
    def test_empty_internal_title_is_422(self, client, admin_headers, test_session: Session, published, title):
        assignment = published["reading"]
        response = client.patch(
            f"/admin/assignments/{assignment.id}",
            json={"internal_title": title},
            headers=admin_headers,
        )
        assert response.status_code == 422

        test_session.refresh(assignment)
        assert assignment.internal_title == "Assignment"

    def test_reserved_slug_update_is_422(self, client, admin_headers, published):
        response = client.patch(
            f"/admin/assignments/{published['reading'].id}",
            json={"slug": "admin"},
            headers=admin_headers,
        )
        assert response.status_code == 422

    def test_remove_password(self, client, admin_headers, published):
        response = client.patch(
            f"/admin/assignments/{published['locked'].id}",
            json={"remove_password": True},
            headers=admin_headers,
        )
        assert response.json()["has_password"] is False
        assert client.get("/a/locked").json()["gate"] == "unlocked"

    def test_unknown_assignment_is_404(self, client, admin_headers):
        response = client.patch("/admin/assignments/missing", json={"public_title": "x"}, headers=admin_headers)
        assert response.status_code == 404


class TestAnalyticsReports:
    """Tests for the analytics endpoints."""

    def test_overview_challenges_and_daily(self, client, admin_headers, factory, published):
        challenge = published["challenge"]
        factory.event(challenge, session_id="a")
        factory.event(challenge, "assignment_view", published["video"], session_id="b")

        response = client.get("/admin/analytics", params={"days": 7}, headers=admin_headers)
        assert response.status_code == 200
        body = response.json()

        assert body["overview"]["total_challenge_views"] == 1
        assert body["overview"]["unique_sessions"] == 2
        assert body["challenges"][0]["challenge_id"] == challenge.id
        assert len(body["daily"]) == 8
        assert sum(d["views"] for d in body["daily"]) == 2

    def test_date_range_filter(self, client, admin_headers, factory, published):
        factory.event(published["challenge"], created_at=datetime(2024, 1, 10, 12, 0))
        body = client.get(
            "/admin/analytics", params={"from": "2024-01-01", "to": "2024-01-31"}, headers=admin_headers
        ).json()
        assert body["overview"]["total_challenge_views"] == 1

        body = client.get(
            "/admin/analytics", params={"from": "2023-01-01", "to": "2023-01-31"}, headers=admin_headers
        ).json()
        assert body["overview"]["total_challenge_views"] == 0
        assert body["challenges"][0]["total_views"] == 0

    @pytest.mark.parametrize(
        "params",
        [{"from": "2024-01-01"}, {"from": "soon", "to": "2024-01-31"}, {"days": 0}],
    )
    def test_invalid_params_are_422(self, client, admin_headers, params):
        assert client.get("/admin/analytics", params=params, headers=admin_headers).status_code == 422

    def test_assignment_stats(self, client, admin_headers, factory, published):
        challenge = published["challenge"]
        factory.event(challenge, "assignment_view", published["video"])
        response = client.get(f"/admin/analytics/challenges/{challenge.id}/assignments", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body[0]["assignment_id"] == published["video"].id
        assert body[0]["views"] == 1

    def test_csv_export(self, client, admin_headers, factory, published):
        factory.event(published["challenge"], session_id="s1", created_at=datetime(2024, 1, 2, 3, 4, 5))

        response = client.get("/admin/analytics/export", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith('attachment; filename="analytics-export-')

        lines = response.text.split("\n")
        assert lines[0] == "Date,Event Type,Client,Challenge,Assignment,Session ID"
        assert lines[1] == '"2024-01-02T03:04:05+00:00","challenge_view","Acme","Welcome","","s1"'

    def test_export_requires_admin(self, client):
        assert client.get("/admin/analytics/export").status_code == 403
