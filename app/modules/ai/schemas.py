from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class SimilarityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_text: Optional[str] = Field(default=None, alias="targetText")
    user_text: Optional[str] = Field(default=None, alias="userText")
    threshold: Optional[float] = 0.7


class SimilarityResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = True
    similarity: float
    passed: bool
    feedback: str
    suggestions: List[str]
    note: Optional[str] = None


class FeedbackRequest(BaseModel):
    audio_blob: Optional[str] = None
    audio_mime_type: Optional[str] = None
    prompt: Optional[str] = None
    criteria: Optional[Dict[str, Any]] = None


class ImproveTranscriptionRequest(BaseModel):
    text: Optional[str] = None
    level: Optional[str] = None
    prompt: Optional[str] = None
    criteria: Optional[Dict[str, Any]] = None


class SpeechRequest(BaseModel):
    text: Optional[str] = None
    voice: Optional[str] = "alloy"
