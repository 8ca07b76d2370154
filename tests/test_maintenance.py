"""Tests for the session and OTP cleanup job."""

import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.core.utils import utc_now
from app.modules.maintenance import scheduler
from app.modules.maintenance.service import CleanupService


def _ago(**kwargs):
    return (utc_now() - timedelta(**kwargs)).isoformat()


def _ahead(**kwargs):
    return (utc_now() + timedelta(**kwargs)).isoformat()


@pytest.fixture
def stale_data(db):
    db.add("user_sessions", id="expired", user_id="u1", created_at=_ago(hours=2), expires_at=_ago(hours=1))
    db.add("user_sessions", id="old", user_id="u2", created_at=_ago(days=8), expires_at=_ahead(days=1))
    for hours in range(1, 5):
        db.add("user_sessions", id=f"busy-{hours}", user_id="u3", created_at=_ago(hours=hours),
               expires_at=_ahead(days=1))
    db.add("otp_verifications", id="used-old", used=True, expires_at=_ago(days=2))
    db.add("otp_verifications", id="used-recent", used=True, expires_at=_ago(hours=1))
    db.add("otp_verifications", id="unused-old", used=False, expires_at=_ago(days=8))
    db.add("otp_verifications", id="unused-recent", used=False, expires_at=_ago(days=1))
    return db


class TestCleanupService:
    """Tests for CleanupService.run."""

    def test_run(self, stale_data):
        results = CleanupService(stale_data).run()
        assert results == {
            "expiredSessions": 1,
            "oldSessions": 1,
            "excessSessions": 1,
            "oldOtps": 2,
            "activeSessions": 3,
        }
        assert sorted(row["id"] for row in stale_data.rows("user_sessions")) == ["busy-1", "busy-2", "busy-3"]
        assert sorted(row["id"] for row in stale_data.rows("otp_verifications")) == ["unused-recent", "used-recent"]

    def test_nothing_to_clean(self, db):
        assert CleanupService(db).run()["activeSessions"] == 0

    def test_failure(self, db):
        db.fail_tables.add("user_sessions")
        with pytest.raises(HTTPException) as excinfo:
            CleanupService(db).run()
        assert excinfo.value.status_code == 500
        assert excinfo.value.detail == "Session cleanup failed"


class TestCleanupEndpoint:
    """Tests for POST /api/v1/admin/maintenance/cleanup-sessions."""

    def test_admin_runs_cleanup(self, client, admin_headers, stale_data):
        response = client.post("/api/v1/admin/maintenance/cleanup-sessions", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["results"]["oldOtps"] == 2
        assert data["results"]["activeSessions"] == 3

    def test_learner_is_rejected(self, client, user_headers):
        response = client.post("/api/v1/admin/maintenance/cleanup-sessions", headers=user_headers)
        assert response.status_code == 401


class TestScheduler:
    """Tests for the background cleanup pass."""

    def test_run_session_cleanup(self, monkeypatch, stale_data):
        monkeypatch.setattr(scheduler, "get_supabase", lambda: stale_data)
        asyncio.run(scheduler.run_session_cleanup())
        assert len(stale_data.rows("user_sessions")) == 3

    def test_errors_are_logged_not_raised(self, monkeypatch, db):
        db.fail_tables.add("user_sessions")
        monkeypatch.setattr(scheduler, "get_supabase", lambda: db)
        asyncio.run(scheduler.run_session_cleanup())
        assert db.calls == []
