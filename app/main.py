import asyncio
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from supabase import Client

from app.config import settings
from app.core.rate_limit import limiter
from app.core.utils import utc_now_iso
from app.database.supabase_client import get_optional_supabase
from app.modules.auth import routes as auth_routes
from app.modules.lessons import routes as lessons_routes
from app.modules.progress import routes as progress_routes
from app.modules.achievements import routes as achievements_routes
from app.modules.evaluation import routes as evaluation_routes
from app.modules.admin import routes as admin_routes
from app.modules.ai import routes as ai_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg", "Invalid value"))
    return _error_response(400, "; ".join(problems) or "Invalid request")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return _error_response(500, "Internal server error")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "details": str(exc)},
    )


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(lessons_routes.router, prefix="/api/v1")
app.include_router(progress_routes.router, prefix="/api/v1")
app.include_router(achievements_routes.router, prefix="/api/v1")
app.include_router(evaluation_routes.router, prefix="/api/v1")
app.include_router(admin_routes.router, prefix="/api/v1")
app.include_router(ai_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not set; authentication will fail")

    if settings.session_cleanup_enabled:
        from app.modules.maintenance.scheduler import session_cleanup_loop
        app.state.cleanup_task = asyncio.create_task(session_cleanup_loop())
        logger.info(
            f"Session cleanup started - will run every {settings.session_cleanup_interval_seconds} seconds"
        )


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "cleanup_task", None)
    if task is not None:
        task.cancel()
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": "Welcome to tutorcat-backend", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health(supabase: Optional[Client] = Depends(get_optional_supabase)):
    """Liveness plus a trivial database query; 503 when the database is unreachable."""
    status = "healthy"
    if supabase is None:
        database = "not configured"
    else:
        try:
            supabase.table("users").select("id").limit(1).execute()
            database = "connected"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            database = "disconnected"
            status = "degraded"
    body = {
        "success": True,
        "status": status,
        "timestamp": utc_now_iso(),
        "environment": settings.environment,
        "database": database,
        "services": {
            "openrouter": bool(settings.openrouter_api_key),
            "openai": bool(settings.openai_api_key),
            "resend": bool(settings.resend_api_key),
            "jwt": bool(settings.jwt_secret),
        },
    }
    return JSONResponse(status_code=200 if status == "healthy" else 503, content=body)


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness check"""
    return {"status": "ready"}
