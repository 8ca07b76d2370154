"""Tests for the shared helpers in app.core."""

from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.core import security
from app.core.rate_limit import FailedLoginTracker, get_client_ip
from app.core.sanitizers import (
    contains_pattern, escape_like, is_uuid, is_valid_email, sanitize_email, sanitize_for_database, sanitize_level,
    sanitize_string, sanitize_username
)
from app.core.utils import average, parse_timestamp, percentage, round_half_up
from app.database.supabase_client import ilike_any


class TestNumbers:
    """Tests for the rounding helpers."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.49) == 2

    def test_percentage(self):
        assert percentage(6, 7) == 86
        assert percentage(1, 8) == 13
        assert percentage(3, 0) == 0
        assert percentage(3, None) == 0

    def test_average(self):
        assert average([50, 75]) == 62.5
        assert average([1, 2, 2]) == 1.7
        assert average([]) == 0


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_iso_with_z(self):
        assert parse_timestamp("2026-01-05T10:00:00Z") == datetime(2026, 1, 5, 10, tzinfo=timezone.utc)

    def test_postgres_without_zone_is_utc(self):
        assert parse_timestamp("2026-01-05 10:00:00") == datetime(2026, 1, 5, 10, tzinfo=timezone.utc)

    def test_unparseable(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None


class TestSanitizers:
    """Tests for the input sanitizers."""

    def test_sanitize_string(self):
        assert sanitize_string("  Hello\x00\n   World ") == "Hello World"
        assert sanitize_string("ＡＢ") == "AB"
        assert sanitize_string("abcdef", max_length=3) == "abc"
        assert sanitize_string(None) == ""

    def test_sanitize_email(self):
        assert sanitize_email("  Alice@Example.COM ") == "alice@example.com"
        assert sanitize_email(42) == ""

    def test_sanitize_username(self):
        assert sanitize_username(" NinaCat ") == "ninacat"

    def test_email_and_uuid_checks(self):
        assert is_valid_email("a@b.co")
        assert not is_valid_email("not-an-email")
        assert is_uuid("123e4567-e89b-12d3-a456-426614174000")
        assert not is_uuid("A1-L01")

    def test_sanitize_level(self):
        assert sanitize_level("B1") == "B1"
        assert sanitize_level("Pre-A1") == "Pre-A1"
        assert sanitize_level("Z9") is None

    def test_like_patterns(self):
        assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
        assert contains_pattern("  Erin ") == "%Erin%"
        assert contains_pattern("   ") is None
        assert ilike_any(["email", "username"], '%a,"b%') == 'email.ilike."%a,\\"b%",username.ilike."%a,\\"b%"'

    def test_sanitize_for_database(self):
        cleaned = sanitize_for_database({"bad key!": " x\x01 ", "n": 3, "items": ["a\x02", None]})
        assert cleaned == {"bad_key_": "x", "n": 3, "items": ["a", None]}


class TestFailedLoginTracker:
    """Tests for the in-memory failed login limiter."""

    def test_blocks_after_max_failures(self):
        tracker = FailedLoginTracker(max_attempts=2, window_seconds=60)
        tracker.check("1.2.3.4")
        tracker.record_failure("1.2.3.4")
        tracker.record_failure("1.2.3.4")
        with pytest.raises(HTTPException) as excinfo:
            tracker.check("1.2.3.4")
        assert excinfo.value.status_code == 429
        assert int(excinfo.value.headers["Retry-After"]) > 0
        tracker.check("5.6.7.8")

    def test_many_keys_are_all_tracked(self):
        tracker = FailedLoginTracker(max_attempts=1, window_seconds=60)
        for number in range(10001):
            tracker.record_failure(f"10.0.{number // 256}.{number % 256}")
        tracker.record_failure("203.0.113.9")
        with pytest.raises(HTTPException):
            tracker.check("203.0.113.9")

    def test_reset(self):
        tracker = FailedLoginTracker(max_attempts=1, window_seconds=60)
        tracker.record_failure("1.2.3.4")
        tracker.reset()
        tracker.check("1.2.3.4")


class TestClientIp:
    """Tests for get_client_ip."""

    @staticmethod
    def _request(headers=None, client=("9.9.9.9", 4000)):
        scope = {
            "type": "http",
            "headers": [(name.encode(), value.encode()) for name, value in (headers or {}).items()],
        }
        if client:
            scope["client"] = client
        return Request(scope)

    def test_forwarded_for_first_hop(self):
        assert get_client_ip(self._request({"x-forwarded-for": "1.2.3.4, 10.0.0.1"})) == "1.2.3.4"

    def test_real_ip(self):
        assert get_client_ip(self._request({"x-real-ip": "2.2.2.2"})) == "2.2.2.2"

    def test_peer(self):
        assert get_client_ip(self._request()) == "9.9.9.9"
        assert get_client_ip(self._request(client=None)) == "unknown"


class TestSecurity:
    """Tests for passwords, OTP hashing and tokens."""

    def test_passwords(self):
        hashed = security.hash_password("correct-horse-1")
        assert security.verify_password("correct-horse-1", hashed)
        assert not security.verify_password("wrong", hashed)
        assert not security.verify_password("anything", None)
        assert not security.verify_password("anything", "not-a-bcrypt-hash")

    def test_otp(self):
        code = security.generate_otp()
        assert len(code) == 6 and code.isdigit()
        salt = security.generate_otp_salt()
        otp_hash = security.hash_otp(code, salt)
        assert security.verify_otp(code, salt, otp_hash)
        assert not security.verify_otp(code, security.generate_otp_salt(), otp_hash)

    def test_token_types(self):
        user = {"id": "u1", "email": "a@b.co", "role": "user"}
        payload = security.decode_token(security.create_access_token(user), ("access", "admin"))
        assert payload["userId"] == "u1"
        assert payload["type"] == "access"
        with pytest.raises(HTTPException) as excinfo:
            security.decode_token(security.create_session_token("u1"), "access")
        assert excinfo.value.detail == "Invalid token type"

    def test_admin_token(self):
        payload = security.decode_token(security.create_admin_token({"id": "u2", "email": "x@y.co"}), "admin")
        assert payload["role"] == "admin"
