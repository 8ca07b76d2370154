from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.evaluation.schemas import (
    SubmitEvaluationRequest, SubmitEvaluationResponse, EvaluationTestResultRequest
)
from app.modules.evaluation.service import EvaluationService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/evaluation", tags=["evaluation"])


def get_evaluation_service(supabase: Client = Depends(get_supabase)) -> EvaluationService:
    return EvaluationService(supabase)


@router.get("/test")
async def get_evaluation_test(
    id: Optional[str] = Query(None),
    test_id: Optional[str] = Query(None),
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Active placement test with its questions"""
    return {"success": True, **service.get_active_test(id or test_id)}


@router.post("/submit", response_model=SubmitEvaluationResponse, response_model_by_alias=True)
async def submit_evaluation(
    submission: SubmitEvaluationRequest,
    current_user: Dict = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Store a placement result and set the user's level"""
    return service.submit(current_user["id"], submission)


@router.post("/results")
async def submit_evaluation_test(
    data: EvaluationTestResultRequest,
    current_user: Dict = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Store a scored test attempt, optionally deriving the user's level from it"""
    return {"success": True, **service.submit_test_result(current_user["id"], data)}
