from fastapi import APIRouter, Depends, Query, status
from app.database.supabase_client import get_supabase
from app.modules.admin.schemas import (
    AdminUserListResponse, LessonWriteRequest, VocabularyCreate, VocabularyUpdate,
    EvaluationTestWriteRequest
)
from app.modules.admin.service import AdminService
from app.modules.admin.content_service import ContentService
from app.modules.evaluation.routes import get_evaluation_service
from app.modules.evaluation.service import EvaluationService
from app.modules.maintenance.service import CleanupService
from app.core.dependencies import require_admin
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin_service(supabase: Client = Depends(get_supabase)) -> AdminService:
    return AdminService(supabase)


def get_content_service(supabase: Client = Depends(get_supabase)) -> ContentService:
    return ContentService(supabase)


def get_cleanup_service(supabase: Client = Depends(get_supabase)) -> CleanupService:
    return CleanupService(supabase)


# Users

@router.get("/users", response_model=AdminUserListResponse, response_model_by_alias=True)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    search: Optional[str] = None,
    sort: str = "created_at",
    order: str = "desc",
    level: Optional[str] = None,
    admin: Dict = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    """List users with search, level filter, sorting and pagination"""
    return service.list_users(page=page, limit=limit, search=search, sort=sort, order=order, level=level)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    admin: Dict = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    """Delete a user and everything recorded for them"""
    return {"success": True, **service.delete_user(user_id)}


@router.post("/users/{user_id}/revoke-sessions")
async def revoke_sessions(
    user_id: str,
    admin: Dict = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    """Log a user out everywhere"""
    return {"success": True, **service.revoke_sessions(user_id)}


@router.get("/users/{user_id}/lessons")
async def get_user_lessons(
    user_id: str,
    admin: Dict = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    """Completed lessons of a user with activity results"""
    return {"success": True, **service.user_lessons(user_id)}


@router.get("/stats")
async def get_stats(
    period: str = "month",
    admin: Dict = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    """Platform statistics and chart series"""
    return {"success": True, **service.stats(period)}


# Lessons

@router.get("/lessons")
async def list_lessons(
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    return {"success": True, "lessons": service.list_lessons()}


@router.get("/lessons/{lesson_id}")
async def get_lesson(
    lesson_id: str,
    check_student_data: bool = Query(False, alias="checkStudentData"),
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    return {"success": True, **service.get_lesson(lesson_id, check_student_data)}


@router.post("/lessons", status_code=status.HTTP_201_CREATED)
async def create_lesson(
    payload: LessonWriteRequest,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    lesson = service.create_lesson(payload, admin["id"])
    return {"success": True, "lesson": lesson, "message": "Lesson created successfully with all activities"}


@router.put("/lessons/{lesson_id}")
async def update_lesson(
    lesson_id: str,
    payload: LessonWriteRequest,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    """Update a lesson; keeps activities that already have student results"""
    lesson = service.update_lesson(lesson_id, payload, admin["id"])
    return {"success": True, "lesson": lesson, "message": "Lesson updated successfully"}


@router.delete("/lessons/{lesson_id}")
async def delete_lesson(
    lesson_id: str,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    service.delete_lesson(lesson_id)
    return {"success": True, "message": "Lesson deleted successfully"}


# Vocabulary

@router.get("/vocabulary")
async def list_vocabulary(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    search: Optional[str] = None,
    activity_id: Optional[str] = Query(None, alias="activityId"),
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    return {"success": True, **service.list_vocabulary(page=page, limit=limit, search=search, activity_id=activity_id)}


@router.get("/vocabulary/{vocabulary_id}")
async def get_vocabulary(
    vocabulary_id: str,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    return {"success": True, "vocabularyItem": service.get_vocabulary(vocabulary_id)}


@router.post("/vocabulary", status_code=status.HTTP_201_CREATED)
async def create_vocabulary(
    data: VocabularyCreate,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    return {"success": True, "vocabularyItem": service.create_vocabulary(data)}


@router.put("/vocabulary/{vocabulary_id}")
async def update_vocabulary(
    vocabulary_id: str,
    data: VocabularyUpdate,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    return {"success": True, "vocabularyItem": service.update_vocabulary(vocabulary_id, data)}


@router.delete("/vocabulary/{vocabulary_id}")
async def delete_vocabulary(
    vocabulary_id: str,
    admin: Dict = Depends(require_admin),
    service: ContentService = Depends(get_content_service)
):
    service.delete_vocabulary(vocabulary_id)
    return {"success": True, "message": "Vocabulary item deleted successfully"}


# Evaluation tests

@router.get("/evaluation-tests")
async def list_evaluation_tests(
    admin: Dict = Depends(require_admin),
    service: EvaluationService = Depends(get_evaluation_service)
):
    return {"success": True, "tests": service.list_tests()}


@router.get("/evaluation-tests/{test_id}")
async def get_evaluation_test(
    test_id: str,
    admin: Dict = Depends(require_admin),
    service: EvaluationService = Depends(get_evaluation_service)
):
    return {"success": True, "test": service.get_test(test_id)}


@router.post("/evaluation-tests")
async def save_evaluation_test(
    payload: EvaluationTestWriteRequest,
    admin: Dict = Depends(require_admin),
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Create or update a placement test"""
    return {"success": True, "test": service.save_test(payload.test)}


# Maintenance

@router.post("/maintenance/cleanup-sessions")
async def cleanup_sessions(
    admin: Dict = Depends(require_admin),
    service: CleanupService = Depends(get_cleanup_service)
):
    """Run the session and OTP cleanup now"""
    return {"success": True, "message": "Cleanup completed successfully", "results": service.run()}
