from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.lessons.schemas import LessonListResponse, LessonDetailResponse
from app.modules.lessons.service import LessonService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/lessons", tags=["lessons"])


def get_lesson_service(supabase: Client = Depends(get_supabase)) -> LessonService:
    return LessonService(supabase)


@router.get("", response_model=LessonListResponse)
async def list_lessons(
    level: Optional[str] = None,
    current_user: Dict = Depends(get_current_user),
    service: LessonService = Depends(get_lesson_service)
):
    """List the lessons of a level with the user's progress on each"""
    return service.list_by_level(current_user["id"], level)


@router.get("/{lesson_id}", response_model=LessonDetailResponse)
async def get_lesson(
    lesson_id: str,
    current_user: Dict = Depends(get_current_user),
    service: LessonService = Depends(get_lesson_service)
):
    """Get a lesson with its steps, activities and the user's results"""
    return service.get_lesson(current_user["id"], lesson_id)
