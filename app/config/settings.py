from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Bypasses RLS; the API does its own auth

    # Auth
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 24 * 60 * 60
    session_token_ttl_seconds: int = 7 * 24 * 60 * 60
    admin_token_ttl_seconds: int = 8 * 60 * 60
    cookie_domain: Optional[str] = None
    max_sessions_per_user: int = 3
    login_max_failed_attempts: int = 10
    login_failed_window_seconds: int = 15 * 60
    login_rate_limit: str = "30/minute"
    otp_rate_limit: str = "10/hour"

    # Email (Resend)
    resend_api_key: Optional[str] = None
    email_from: str = "noreply@testingportal.org"

    # AI
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/gpt-4o-mini"
    openai_api_key: Optional[str] = None
    openai_feedback_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"
    openai_tts_model: str = "tts-1"
    tts_storage_bucket: str = "audio-files"

    # Maintenance
    session_cleanup_enabled: bool = False
    session_cleanup_interval_seconds: int = 3600

    # App
    app_name: str = "tutorcat-backend"
    app_url: str = "http://localhost:3000"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cookie_secure(self) -> bool:
        return self.is_production

    @property
    def cookie_samesite(self) -> str:
        return "strict" if self.is_production else "lax"

    def get_cookie_domain(self) -> Optional[str]:
        if not self.cookie_domain or "localhost" in self.cookie_domain:
            return None
        return self.cookie_domain

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
