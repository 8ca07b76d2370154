from fastapi import APIRouter, Depends, Request, Response
from app.config import settings
from app.database.supabase_client import get_supabase
from app.modules.auth.schemas import (
    LoginRequest, ValidateTokenRequest, SendOtpRequest, VerifyOtpRequest,
    ResetPasswordRequest, ChangePasswordRequest
)
from app.modules.auth.service import AuthService
from app.modules.auth.otp_service import OtpService
from app.modules.auth.email_service import EmailService, get_email_service
from app.core.dependencies import get_auth_service, get_current_user
from app.core.rate_limit import get_client_ip, limiter
from app.core.security import (
    ACCESS_TOKEN_COOKIE, SESSION_TOKEN_COOKIE, clear_auth_cookies, set_auth_cookies
)
from fastapi import HTTPException
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/auth", tags=["auth"])


def get_otp_service(
    supabase: Client = Depends(get_supabase),
    email_service: EmailService = Depends(get_email_service)
) -> OtpService:
    return OtpService(supabase, email_service)


def _session_response(response: Response, user: Dict, tokens: Dict, message: str) -> Dict:
    set_auth_cookies(response, tokens["token"], tokens["sessionToken"], tokens.get("adminToken"))
    return {
        "success": True,
        "message": message,
        "user": user,
        "token": tokens["token"],
        "sessionToken": tokens["sessionToken"],
    }


@router.post("/login")
@limiter.limit(settings.login_rate_limit)
async def login(
    request: Request,
    response: Response,
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login with email or username and receive auth cookies"""
    result = service.login(login_data.username, login_data.password, get_client_ip(request))
    return _session_response(response, result.pop("user"), result, "Login successful")


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service)
):
    """Expire the current session and clear auth cookies"""
    service.logout(request.cookies.get(SESSION_TOKEN_COOKIE))
    clear_auth_cookies(response)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
async def me(current_user: Dict = Depends(get_current_user)):
    """Get the authenticated user"""
    return {"success": True, "user": current_user}


@router.post("/validate")
async def validate_token(
    request: Request,
    body: Optional[ValidateTokenRequest] = None,
    service: AuthService = Depends(get_auth_service)
):
    """Validate a token from the body or the access cookie"""
    token = (body.token if body else None) or request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    user = service.authenticate_token(token, expected_type="access")
    return {"success": True, "valid": True, "user": user}


@router.get("/check-username")
async def check_username(
    username: Optional[str] = None,
    service: AuthService = Depends(get_auth_service)
):
    """Check whether a username is free"""
    result = service.check_username(username)
    return {"success": True, **result}


@router.post("/send-otp")
@limiter.limit(settings.otp_rate_limit)
async def send_otp(
    request: Request,
    otp_data: SendOtpRequest,
    service: OtpService = Depends(get_otp_service)
):
    """Email a one-time code for login, signup or password reset"""
    service.send_otp(otp_data.email, otp_data.type)
    return {"success": True, "message": "OTP sent successfully"}


@router.post("/verify-otp")
async def verify_otp(
    response: Response,
    otp_data: VerifyOtpRequest,
    service: OtpService = Depends(get_otp_service),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Verify a one-time code; logs in or creates the account"""
    user, message = service.verify_otp(otp_data)
    if user is None:
        return {"success": True, "message": message}
    tokens = auth_service.start_session(user)
    return _session_response(response, user, tokens, message)


@router.post("/reset-password")
async def reset_password(
    reset_data: ResetPasswordRequest,
    service: OtpService = Depends(get_otp_service)
):
    """Set a new password using a password_reset code"""
    service.reset_password(reset_data.email, reset_data.otp, reset_data.new_password)
    return {"success": True, "message": "Password reset successfully"}


@router.post("/change-password")
async def change_password(
    password_data: ChangePasswordRequest,
    current_user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service)
):
    """Change the password of the authenticated user"""
    service.change_password(current_user["id"], password_data.current_password, password_data.new_password)
    return {"success": True, "message": "Password changed successfully"}
