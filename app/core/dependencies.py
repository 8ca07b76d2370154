"""
Core dependencies for route protection
"""

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.security import ACCESS_TOKEN_COOKIE, ADMIN_TOKEN_COOKIE
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from supabase import Client
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Cookies are the primary transport; the bearer header serves API clients and tools
security = HTTPBearer(auto_error=False)


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def _token_from(request: Request, cookie_name: str, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = request.cookies.get(cookie_name)
    if token:
        return token
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict:
    """Resolve the authenticated learner from the access token"""
    token = _token_from(request, ACCESS_TOKEN_COOKIE, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    return auth_service.authenticate_token(token, expected_type="access")


def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict:
    """Resolve an admin from the admin token (or an admin's access token)"""
    token = _token_from(request, ADMIN_TOKEN_COOKIE, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Admin authentication required")
    try:
        user = auth_service.authenticate_token(token, expected_type=("admin", "access"))
    except HTTPException as e:
        if e.status_code == 401:
            raise HTTPException(status_code=401, detail="Admin authentication required")
        raise
    if user.get("role") != "admin":
        logger.warning(f"Non-admin user {user['id']} attempted admin access")
        raise HTTPException(status_code=401, detail="Admin authentication required")
    return user
