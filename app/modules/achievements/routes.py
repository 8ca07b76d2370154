from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.achievements.service import AchievementService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/achievements", tags=["achievements"])


def get_achievement_service(supabase: Client = Depends(get_supabase)) -> AchievementService:
    return AchievementService(supabase)


@router.get("")
async def list_achievements(
    current_user: Dict = Depends(get_current_user),
    service: AchievementService = Depends(get_achievement_service)
):
    """All achievements with the user's earned state and progress"""
    return {"success": True, "data": service.list_for_user(current_user["id"])}
