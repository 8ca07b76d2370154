from fastapi import APIRouter, Depends
from openai import OpenAI
from supabase import Client
from app.database.supabase_client import get_supabase
from app.modules.ai.clients import get_openai_client, get_openrouter_client
from app.modules.ai.schemas import (
    FeedbackRequest, ImproveTranscriptionRequest, SimilarityRequest, SimilarityResponse, SpeechRequest
)
from app.modules.ai.service import FeedbackService, SimilarityService, SpeechService
from app.core.dependencies import get_current_user
from typing import Dict, Optional

router = APIRouter(prefix="/ai", tags=["ai"])


def get_similarity_service(client: Optional[OpenAI] = Depends(get_openrouter_client)) -> SimilarityService:
    return SimilarityService(client)


def get_feedback_service(client: Optional[OpenAI] = Depends(get_openai_client)) -> FeedbackService:
    return FeedbackService(client)


def get_speech_service(
    client: Optional[OpenAI] = Depends(get_openai_client),
    supabase: Client = Depends(get_supabase)
) -> SpeechService:
    return SpeechService(client, supabase)


@router.post("/similarity", response_model=SimilarityResponse)
def check_similarity(
    data: SimilarityRequest,
    current_user: Dict = Depends(get_current_user),
    service: SimilarityService = Depends(get_similarity_service)
):
    """Score how closely a spoken reading matches its target text"""
    return service.compare(data)


@router.post("/feedback")
def speaking_feedback(
    data: FeedbackRequest,
    current_user: Dict = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service)
):
    """Transcribe a speaking answer and grade it"""
    return service.analyze(data)


@router.post("/improve-transcription")
def improve_transcription(
    data: ImproveTranscriptionRequest,
    current_user: Dict = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service)
):
    """Rewrite a transcript at the learner's level"""
    return service.improve(data)


@router.post("/speech")
def generate_speech(
    data: SpeechRequest,
    current_user: Dict = Depends(get_current_user),
    service: SpeechService = Depends(get_speech_service)
):
    """Generate spoken audio for a text and store it"""
    return service.generate(data)
