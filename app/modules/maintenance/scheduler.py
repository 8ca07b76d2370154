import asyncio
import logging

from app.config import settings
from app.database.supabase_client import get_supabase
from app.modules.maintenance.service import CleanupService

logger = logging.getLogger(__name__)


async def run_session_cleanup():
    """Run one cleanup pass off the event loop."""
    try:
        service = CleanupService(get_supabase())
        await asyncio.to_thread(service.run)
    except Exception as e:
        logger.error(f"Error in session cleanup: {str(e)}")


async def session_cleanup_loop():
    """Background task that periodically removes stale sessions and OTPs"""
    while True:
        try:
            await run_session_cleanup()
        except Exception as e:
            logger.error(f"Error in session cleanup loop: {str(e)}")

        await asyncio.sleep(settings.session_cleanup_interval_seconds)
