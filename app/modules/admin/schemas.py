from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from app.modules.evaluation.schemas import EvaluationTestData


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")


class AdminUserListResponse(BaseModel):
    success: bool = True
    users: List[Dict[str, Any]]
    pagination: Pagination


class VocabularyItemData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    english_word: Optional[str] = None
    thai_translation: Optional[str] = None
    audio_url: Optional[str] = None
    image_url: Optional[str] = None


class GrammarSentenceData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    original_sentence: Optional[str] = None
    correct_sentence: Optional[str] = None
    words_array: Optional[List[str]] = None


class ActivityData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    activity_type: str
    activity_order: int
    title: Optional[str] = None
    description: Optional[str] = None
    estimated_time_seconds: Optional[int] = None
    content: Dict[str, Any] = {}
    vocabulary_items: List[VocabularyItemData] = []
    grammar_sentences: List[GrammarSentenceData] = []


class LessonData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    level: Optional[str] = None
    lesson_number: Optional[int] = None
    topic: Optional[str] = None


class LessonWriteRequest(BaseModel):
    lesson: Optional[LessonData] = None
    activities: Optional[List[ActivityData]] = None


class VocabularyCreate(BaseModel):
    activity_id: Optional[str] = None
    english_word: Optional[str] = None
    thai_translation: Optional[str] = None
    audio_url: Optional[str] = None
    image_url: Optional[str] = None


class VocabularyUpdate(BaseModel):
    english_word: Optional[str] = None
    thai_translation: Optional[str] = None
    audio_url: Optional[str] = None
    image_url: Optional[str] = None


class EvaluationTestWriteRequest(BaseModel):
    test: Optional[EvaluationTestData] = None
