from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.progress.schemas import (
    SubmitActivityRequest, FinalizeLessonRequest, AdvanceLevelResponse
)
from app.modules.progress.service import ProgressService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/progress", tags=["progress"])


def get_progress_service(supabase: Client = Depends(get_supabase)) -> ProgressService:
    return ProgressService(supabase)


@router.post("/activities")
async def submit_activity(
    submission: SubmitActivityRequest,
    current_user: Dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service)
):
    """Record one activity result and update lesson progress incrementally"""
    service.submit_activity(current_user["id"], submission)
    return {"success": True, "message": "Lesson activity submitted successfully"}


@router.post("/finalize")
async def finalize_lesson(
    request: FinalizeLessonRequest,
    current_user: Dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service)
):
    """Score a finished lesson, award stars and achievements"""
    return {"success": True, "data": service.finalize_lesson(current_user["id"], request.lesson_id)}


@router.post("/advance-level", response_model=AdvanceLevelResponse)
async def advance_level(
    current_user: Dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service)
):
    """Move the user to the next CEFR level once every lesson of the current one is done"""
    return service.advance_level(current_user)


@router.get("/dashboard")
async def dashboard(
    current_user: Dict = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service)
):
    """Progress overview for the dashboard"""
    return {"success": True, "data": service.dashboard(current_user)}
