"""
Transactional email through the Resend REST API
"""

import logging
from typing import Any, Dict, Optional

import requests

from app.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT_SECONDS = 10

_FOOTER = """
            <hr style="border: none; border-top: 1px solid #e9ecef; margin: 30px 0;">
            <p style="font-size: 12px; color: #6c757d;">
                This is an automated message from TutorCat. Please do not reply to this email.
            </p>"""

# (subject, heading, intro, code label, code colour, expiry minutes, closing line)
_OTP_TEMPLATES = {
    "signup": (
        "Confirm Your TutorCat Registration",
        "Welcome to TutorCat! 🐱",
        "Thank you for registering! Please confirm your email address to activate your account.",
        "Your Verification Code",
        "#007bff",
        5,
        "If you didn't register for this account, please ignore this email.",
    ),
    "login": (
        "Your TutorCat Login Code",
        "Welcome back to TutorCat! 🐱",
        "Use this code to sign in to your account:",
        "Your Login Code",
        "#28a745",
        10,
        "If you didn't request this code, please ignore this email.",
    ),
    "password_reset": (
        "Reset Your TutorCat Password",
        "Password reset request 🐱",
        "We received a request to reset your password. Use this code to continue:",
        "Your Reset Code",
        "#dc3545",
        10,
        "If you didn't request a password reset, you can safely ignore this email.",
    ),
}


class EmailDeliveryError(Exception):
    pass


class EmailService:
    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None):
        self.api_key = api_key or settings.resend_api_key
        self.sender = sender or settings.email_from
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set. Emails cannot be delivered.")

    def send_email(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        if not self.api_key:
            raise EmailDeliveryError("Email service is not configured")
        try:
            resp = requests.post(
                RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Email sending failed: {e}")
            raise EmailDeliveryError("Failed to send email") from e
        logger.info(f"Email sent: subject={subject!r}")
        return resp.json()

    def send_otp_email(self, to: str, code: str, otp_type: str) -> Dict[str, Any]:
        subject, heading, intro, label, colour, minutes, closing = _OTP_TEMPLATES[otp_type]
        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2>{heading}</h2>
            <p>{intro}</p>
            <div style="background-color: #f8f9fa; border: 1px solid #e9ecef; border-radius: 8px; padding: 20px; margin: 20px 0; text-align: center;">
                <h3 style="margin: 0 0 10px 0; color: #495057;">{label}</h3>
                <div style="font-size: 32px; font-weight: bold; color: {colour}; letter-spacing: 8px; font-family: monospace;">
                    {code}
                </div>
            </div>
            <p><strong>This code will expire in {minutes} minutes.</strong></p>
            <p>{closing}</p>{_FOOTER}
        </div>
        """
        return self.send_email(to, subject, html)


def get_email_service() -> EmailService:
    return EmailService()
