import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple, Union

from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.core import security
from app.core.rate_limit import failed_login_tracker
from app.core.sanitizers import escape_like, sanitize_string, sanitize_username
from app.core.utils import parse_timestamp, utc_now, utc_now_iso

logger = logging.getLogger(__name__)

MAX_CREDENTIAL_LENGTH = 1000
MIN_PASSWORD_LENGTH = 8


def serialize_user(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a users row to the camelCase shape the frontend expects."""
    return {
        "id": row["id"],
        "email": row.get("email"),
        "username": row.get("username"),
        "firstName": row.get("first_name"),
        "lastName": row.get("last_name"),
        "level": row.get("level"),
        "role": row.get("role") or "user",
        "currentLesson": row.get("current_lesson") or 1,
        "totalStars": row.get("total_stars") or 0,
        "createdAt": row.get("created_at"),
        "lastLogin": row.get("last_login"),
        "emailVerified": bool(row.get("email_verified")),
        "evalTestResult": row.get("eval_test_result"),
    }


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_user_row(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("users")\
            .select("*")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def get_user_row_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("users")\
            .select("*")\
            .eq("email", email)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def get_user_row_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive username lookup."""
        result = self.supabase.table("users")\
            .select("*")\
            .ilike("username", escape_like(username))\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def authenticate_token(self, token: str, expected_type: Union[str, Tuple[str, ...], None] = "access") -> Dict[str, Any]:
        """Validate a JWT and return the serialized user it belongs to."""
        payload = security.decode_token(token, expected_type)
        user_id = payload.get("userId")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")
        try:
            row = self.get_user_row(user_id)
        except Exception as e:
            logger.error(f"Error loading user for token: {e}")
            raise HTTPException(status_code=500, detail="Authentication failed")
        if not row:
            raise HTTPException(status_code=401, detail="User not found")
        revoked_at = parse_timestamp(row.get("session_revoked_at"))
        issued_at = payload.get("iat")
        if revoked_at and issued_at is not None and int(revoked_at.timestamp()) > int(issued_at):
            raise HTTPException(status_code=401, detail="Session has been revoked")
        return serialize_user(row)

    def start_session(self, user: Dict[str, Any]) -> Dict[str, Optional[str]]:
        """Issue tokens for a user, persist the session and stamp last_login."""
        access_token = security.create_access_token(user)
        session_token = security.create_session_token(user["id"])
        admin_token = security.create_admin_token(user) if user.get("role") == "admin" else None
        now = utc_now()
        self.supabase.table("user_sessions").insert({
            "user_id": user["id"],
            "session_token": session_token,
            "expires_at": (now + timedelta(seconds=settings.session_token_ttl_seconds)).isoformat(),
            "created_at": now.isoformat(),
        }).execute()
        self.prune_sessions(user["id"])
        self.supabase.table("users")\
            .update({"last_login": now.isoformat()})\
            .eq("id", user["id"])\
            .execute()
        return {"token": access_token, "sessionToken": session_token, "adminToken": admin_token}

    def prune_sessions(self, user_id: str) -> int:
        """Keep only the newest unexpired sessions of a user. Failures are logged, not raised."""
        try:
            result = self.supabase.table("user_sessions")\
                .select("id, expires_at, created_at")\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)\
                .execute()
            now = utc_now()
            keep = []
            stale = []
            for row in result.data or []:
                expires_at = parse_timestamp(row.get("expires_at"))
                if expires_at and expires_at > now and len(keep) < settings.max_sessions_per_user:
                    keep.append(row["id"])
                else:
                    stale.append(row["id"])
            if stale:
                self.supabase.table("user_sessions").delete().in_("id", stale).execute()
            return len(stale)
        except Exception as e:
            logger.error(f"Error pruning sessions for user {user_id}: {e}")
            return 0

    def login(self, username: Optional[str], password: Optional[str], client_ip: str) -> Dict[str, Any]:
        if not username or not password:
            raise HTTPException(status_code=400, detail="Username and password are required")
        if len(username) > MAX_CREDENTIAL_LENGTH or len(password) > MAX_CREDENTIAL_LENGTH:
            raise HTTPException(status_code=400, detail="Input too long")

        failed_login_tracker.check(client_ip)
        identifier = sanitize_string(username, 254)
        try:
            if "@" in identifier:
                row = self.get_user_row_by_email(identifier.lower())
            else:
                row = self.get_user_row_by_username(identifier)
        except Exception as e:
            logger.error(f"Login lookup failed: {e}")
            raise HTTPException(status_code=500, detail="Login failed")

        if not row or not security.verify_password(password, row.get("password_hash")):
            failed_login_tracker.record_failure(client_ip)
            raise HTTPException(status_code=401, detail="Incorrect email or password")

        user = serialize_user(row)
        try:
            tokens = self.start_session(user)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to create session for user {user['id']}: {e}")
            raise HTTPException(status_code=500, detail="Login failed")
        logger.info(f"User {user['id']} logged in")
        return {"user": user, **tokens}

    def logout(self, session_token: Optional[str]) -> None:
        if not session_token:
            return
        try:
            self.supabase.table("user_sessions")\
                .update({"expires_at": utc_now_iso()})\
                .eq("session_token", session_token)\
                .execute()
        except Exception as e:
            # Cookies are cleared regardless
            logger.error(f"Failed to expire session on logout: {e}")

    def check_username(self, raw_username: Optional[str]) -> Dict[str, Any]:
        if raw_username is None:
            raise HTTPException(status_code=400, detail="Username parameter is required")
        username = sanitize_username(raw_username)
        if not username:
            raise HTTPException(status_code=400, detail="Invalid username format")
        try:
            existing = self.get_user_row_by_username(username)
        except Exception as e:
            logger.error(f"Username check failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to check username")
        return {"available": existing is None, "username": username}

    def change_password(self, user_id: str, current_password: Optional[str], new_password: Optional[str]) -> None:
        if not current_password or not new_password:
            raise HTTPException(status_code=400, detail="Current password and new password are required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail="Password must be at least 8 characters long")
        try:
            row = self.get_user_row(user_id)
            if not row:
                raise HTTPException(status_code=404, detail="User not found")
            if not security.verify_password(current_password, row.get("password_hash")):
                raise HTTPException(status_code=401, detail="Current password is incorrect")
            self.supabase.table("users")\
                .update({"password_hash": security.hash_password(new_password), "updated_at": utc_now_iso()})\
                .eq("id", user_id)\
                .execute()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to change password for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to change password")
