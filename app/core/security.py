"""
Token, password and OTP primitives shared by the auth and admin modules
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

import bcrypt
import jwt
from fastapi import HTTPException, Response

from app.config import settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"
SESSION_TOKEN_COOKIE = "session_token"
ADMIN_TOKEN_COOKIE = "admin_token"

BCRYPT_ROUNDS = 12


def _require_secret() -> str:
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured")
        raise HTTPException(status_code=500, detail="JWT configuration error")
    return settings.jwt_secret


def _encode(payload: Dict[str, Any], ttl_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    claims = {**payload, "iat": now, "exp": now + timedelta(seconds=ttl_seconds)}
    return jwt.encode(claims, _require_secret(), algorithm=settings.jwt_algorithm)


def create_access_token(user: Dict[str, Any]) -> str:
    return _encode(
        {"userId": user["id"], "email": user["email"], "role": user.get("role") or "user", "type": "access"},
        settings.access_token_ttl_seconds,
    )


def create_session_token(user_id: str) -> str:
    # jti keeps two sessions issued in the same second distinct
    return _encode(
        {"userId": user_id, "type": "session", "jti": secrets.token_hex(8)},
        settings.session_token_ttl_seconds,
    )


def create_admin_token(user: Dict[str, Any]) -> str:
    return _encode(
        {"userId": user["id"], "email": user["email"], "role": "admin", "type": "admin"},
        settings.admin_token_ttl_seconds,
    )


def decode_token(token: str, expected_type: Union[str, Tuple[str, ...], None] = None) -> Dict[str, Any]:
    """Decode and verify a token; raises 401 on any failure."""
    secret = _require_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    allowed = (expected_type,) if isinstance(expected_type, str) else expected_type
    if allowed and payload.get("type") not in allowed:
        raise HTTPException(status_code=401, detail="Invalid token type")
    return payload


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def generate_otp_salt() -> str:
    return secrets.token_hex(16)


def hash_otp(otp: str, salt: str) -> str:
    return hmac.new(salt.encode("utf-8"), otp.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_otp(otp: str, salt: str, otp_hash: str) -> bool:
    return hmac.compare_digest(hash_otp(otp, salt), otp_hash or "")


def _cookie_kwargs() -> Dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": "/",
        "domain": settings.get_cookie_domain(),
    }


def set_auth_cookies(
    response: Response,
    access_token: str,
    session_token: str,
    admin_token: Optional[str] = None,
) -> None:
    kwargs = _cookie_kwargs()
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, max_age=settings.access_token_ttl_seconds, **kwargs)
    response.set_cookie(SESSION_TOKEN_COOKIE, session_token, max_age=settings.session_token_ttl_seconds, **kwargs)
    if admin_token:
        response.set_cookie(ADMIN_TOKEN_COOKIE, admin_token, max_age=settings.admin_token_ttl_seconds, **kwargs)


def clear_auth_cookies(response: Response) -> None:
    kwargs = _cookie_kwargs()
    for name in (ACCESS_TOKEN_COOKIE, SESSION_TOKEN_COOKIE, ADMIN_TOKEN_COOKIE):
        response.set_cookie(name, "", max_age=0, **kwargs)
