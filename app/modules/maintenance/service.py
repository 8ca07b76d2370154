import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict

from fastapi import HTTPException
from supabase import Client

from app.config import settings
from app.core.utils import utc_now
from app.database.supabase_client import select_all

logger = logging.getLogger(__name__)

SESSION_MAX_AGE_DAYS = 7
USED_OTP_RETENTION_HOURS = 24
UNUSED_OTP_RETENTION_DAYS = 7


class CleanupService:
    """Removes stale sessions and one-time codes."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _delete_sessions_where(self, column: str, before: str) -> int:
        result = self.supabase.table("user_sessions")\
            .delete()\
            .lt(column, before)\
            .execute()
        return len(result.data or [])

    def delete_excess_sessions(self) -> int:
        """Keep at most max_sessions_per_user unexpired sessions per user, newest first."""
        now = utc_now().isoformat()
        sessions = select_all(lambda: self.supabase.table("user_sessions")
                              .select("id, user_id, created_at")
                              .gte("expires_at", now)
                              .order("created_at", desc=True)
                              .order("id"))
        per_user = defaultdict(int)
        excess = []
        for session in sessions:
            per_user[session["user_id"]] += 1
            if per_user[session["user_id"]] > settings.max_sessions_per_user:
                excess.append(session["id"])
        if excess:
            self.supabase.table("user_sessions").delete().in_("id", excess).execute()
        return len(excess)

    def delete_old_otps(self) -> int:
        now = utc_now()
        used = self.supabase.table("otp_verifications")\
            .delete()\
            .eq("used", True)\
            .lt("expires_at", (now - timedelta(hours=USED_OTP_RETENTION_HOURS)).isoformat())\
            .execute()
        unused = self.supabase.table("otp_verifications")\
            .delete()\
            .eq("used", False)\
            .lt("expires_at", (now - timedelta(days=UNUSED_OTP_RETENTION_DAYS)).isoformat())\
            .execute()
        return len(used.data or []) + len(unused.data or [])

    def count_active_sessions(self) -> int:
        result = self.supabase.table("user_sessions")\
            .select("id", count="exact")\
            .gte("expires_at", utc_now().isoformat())\
            .execute()
        return result.count or 0

    def run(self) -> Dict[str, int]:
        try:
            now = utc_now()
            results = {
                "expiredSessions": self._delete_sessions_where("expires_at", now.isoformat()),
                "oldSessions": self._delete_sessions_where(
                    "created_at", (now - timedelta(days=SESSION_MAX_AGE_DAYS)).isoformat()
                ),
                "excessSessions": self.delete_excess_sessions(),
                "oldOtps": self.delete_old_otps(),
                "activeSessions": self.count_active_sessions(),
            }
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}")
            raise HTTPException(status_code=500, detail="Session cleanup failed")
        logger.info(
            f"Cleanup removed {results['expiredSessions']} expired, {results['oldSessions']} old and "
            f"{results['excessSessions']} excess sessions plus {results['oldOtps']} OTPs; "
            f"{results['activeSessions']} sessions active"
        )
        return results
