import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException
from supabase import Client

from app.core import security
from app.core.sanitizers import (
    is_valid_email, sanitize_email, sanitize_string, sanitize_username
)
from app.core.utils import parse_timestamp, utc_now, utc_now_iso
from app.modules.auth.email_service import EmailDeliveryError, EmailService
from app.modules.auth.schemas import VerifyOtpRequest
from app.modules.auth.service import AuthService, MIN_PASSWORD_LENGTH, serialize_user

logger = logging.getLogger(__name__)

OTP_TYPES = ["login", "signup", "password_reset"]
OTP_PURPOSES = {
    "signup": "email_verification",
    "password_reset": "password_reset",
    "login": "login",
}
OTP_MAX_ATTEMPTS = 5
_OTP_CODE = re.compile(r"^\d{6}$")


def otp_expiry_minutes(otp_type: str) -> int:
    return 5 if otp_type == "signup" else 10


class OtpService:
    def __init__(self, supabase: Client, email_service: EmailService):
        self.supabase = supabase
        self.email_service = email_service
        self.auth = AuthService(supabase)

    def _validate_email(self, raw_email: Optional[str]) -> str:
        email = sanitize_email(raw_email)
        if not email:
            raise HTTPException(status_code=400, detail="Email is required")
        if not is_valid_email(email):
            raise HTTPException(status_code=400, detail="Invalid email format")
        return email

    def _validate_type(self, raw_type: Optional[str]) -> str:
        otp_type = sanitize_string(raw_type, 20)
        if otp_type not in OTP_TYPES:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid or missing type. Must be one of: {', '.join(OTP_TYPES)}",
            )
        return otp_type

    def _latest_valid_otp(self, email: str, purpose: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("otp_verifications")\
            .select("*")\
            .eq("identifier", email)\
            .eq("purpose", purpose)\
            .eq("used", False)\
            .gt("expires_at", utc_now_iso())\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _mark_used(self, otp_id: str) -> None:
        self.supabase.table("otp_verifications")\
            .update({"used": True, "used_at": utc_now_iso()})\
            .eq("id", otp_id)\
            .execute()

    def _set_attempts(self, otp_id: str, attempts: int) -> None:
        self.supabase.table("otp_verifications")\
            .update({"attempts": attempts})\
            .eq("id", otp_id)\
            .execute()

    def send_otp(self, raw_email: Optional[str], raw_type: Optional[str]) -> None:
        email = self._validate_email(raw_email)
        otp_type = self._validate_type(raw_type)
        purpose = OTP_PURPOSES[otp_type]
        try:
            existing_user = self.auth.get_user_row_by_email(email)
            if otp_type in ("login", "password_reset") and not existing_user:
                raise HTTPException(status_code=400, detail="No account found with this email")
            if otp_type == "signup" and existing_user:
                raise HTTPException(status_code=400, detail="Account already exists with this email")

            self.supabase.table("otp_verifications")\
                .delete()\
                .eq("identifier", email)\
                .eq("purpose", purpose)\
                .eq("used", False)\
                .execute()

            code = security.generate_otp()
            salt = security.generate_otp_salt()
            now = utc_now()
            self.supabase.table("otp_verifications").insert({
                "identifier": email,
                "purpose": purpose,
                "otp_hash": security.hash_otp(code, salt),
                "otp_salt": salt,
                "expires_at": (now + timedelta(minutes=otp_expiry_minutes(otp_type))).isoformat(),
                "attempts": 0,
                "max_attempts": OTP_MAX_ATTEMPTS,
                "used": False,
                "created_at": now.isoformat(),
            }).execute()

            self.email_service.send_otp_email(email, code, otp_type)
            logger.info(f"OTP issued for purpose={purpose}")
        except HTTPException:
            raise
        except EmailDeliveryError:
            raise HTTPException(status_code=400, detail="Failed to send email")
        except Exception as e:
            logger.error(f"Failed to issue OTP: {e}")
            raise HTTPException(status_code=500, detail="Failed to send verification code")

    def verify_otp(self, data: VerifyOtpRequest) -> Tuple[Optional[Dict[str, Any]], str]:
        """Check a code. Returns (user, message); user is None for password resets."""
        email = self._validate_email(data.email)
        otp_type = self._validate_type(data.type)
        code = sanitize_string(data.code or data.otp, 10)
        if not _OTP_CODE.match(code):
            raise HTTPException(status_code=400, detail="Invalid OTP format. Must be 6 digits.")
        purpose = OTP_PURPOSES[otp_type]
        try:
            record = self._latest_valid_otp(email, purpose)
            if not record:
                raise HTTPException(status_code=400, detail="OTP not found or expired. Please request a new one.")
            max_attempts = record.get("max_attempts") or OTP_MAX_ATTEMPTS
            attempts = record.get("attempts") or 0
            if attempts >= max_attempts:
                raise HTTPException(status_code=400, detail="Too many failed attempts. Please request a new OTP.")
            attempts += 1
            self._set_attempts(record["id"], attempts)
            if not security.verify_otp(code, record["otp_salt"], record["otp_hash"]):
                remaining = max(0, max_attempts - attempts)
                raise HTTPException(status_code=400, detail=f"Invalid OTP. {remaining} attempts remaining.")

            if otp_type == "password_reset":
                # Consumed by reset-password
                return None, "OTP verified successfully"

            self._mark_used(record["id"])
            if otp_type == "login":
                row = self.auth.get_user_row_by_email(email)
                if not row:
                    raise HTTPException(status_code=404, detail="Account not found")
                return serialize_user(row), "Login successful"
            return self._create_account(email, data), "Account created successfully"
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"OTP verification failed: {e}")
            raise HTTPException(status_code=500, detail="Verification failed")

    def _create_account(self, email: str, data: VerifyOtpRequest) -> Dict[str, Any]:
        first_name = sanitize_string(data.first_name, 100)
        last_name = sanitize_string(data.last_name, 100)
        username = sanitize_username(data.username)
        password = data.password or ""
        if not first_name or not last_name or not username or not password:
            raise HTTPException(status_code=400, detail="Missing required fields for signup")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail="Password must be at least 8 characters long")
        if self.auth.get_user_row_by_email(email):
            raise HTTPException(status_code=400, detail="Account already exists with this email")
        if self.auth.get_user_row_by_username(username):
            raise HTTPException(status_code=400, detail="Username already taken")

        result = self.supabase.table("users").insert({
            "email": email,
            "username": username,
            "first_name": first_name,
            "last_name": last_name,
            "password_hash": security.hash_password(password),
            "role": "admin" if username == "admin" else "user",
            "level": None,
            "current_lesson": 1,
            "total_stars": 0,
            "email_verified": True,
            "created_at": utc_now_iso(),
        }).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create account")
        logger.info(f"Created account {result.data[0]['id']}")
        return serialize_user(result.data[0])

    def reset_password(self, raw_email: Optional[str], otp: Optional[str], new_password: Optional[str]) -> None:
        email = self._validate_email(raw_email)
        code = sanitize_string(otp, 10)
        if not code or not new_password:
            raise HTTPException(status_code=400, detail="Email, verification code and new password are required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail="Password must be at least 8 characters long")
        try:
            record = self._latest_valid_otp(email, "password_reset")
            if not record:
                raise HTTPException(status_code=400, detail=self._explain_missing_reset_code(email))
            max_attempts = record.get("max_attempts") or OTP_MAX_ATTEMPTS
            attempts = record.get("attempts") or 0
            if attempts >= max_attempts:
                raise HTTPException(
                    status_code=400,
                    detail="Maximum verification attempts exceeded. Please request a new code.",
                )
            if not security.verify_otp(code, record["otp_salt"], record["otp_hash"]):
                self._set_attempts(record["id"], attempts + 1)
                raise HTTPException(status_code=400, detail="Invalid verification code")

            self._mark_used(record["id"])
            row = self.auth.get_user_row_by_email(email)
            if not row:
                raise HTTPException(status_code=404, detail="User not found")
            self.supabase.table("users")\
                .update({"password_hash": security.hash_password(new_password), "updated_at": utc_now_iso()})\
                .eq("id", row["id"])\
                .execute()
            logger.info(f"Password reset for user {row['id']}")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Password reset failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to reset password")

    def _explain_missing_reset_code(self, email: str) -> str:
        result = self.supabase.table("otp_verifications")\
            .select("used, expires_at")\
            .eq("identifier", email)\
            .eq("purpose", "password_reset")\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        if result.data:
            latest = result.data[0]
            if latest.get("used"):
                return "This verification code has already been used. Please request a new one."
            expires_at = parse_timestamp(latest.get("expires_at"))
            if expires_at and expires_at <= utc_now():
                return "Verification code has expired. Please request a new one."
        return "No valid verification code found. Please request a new one."
