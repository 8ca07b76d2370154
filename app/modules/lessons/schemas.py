from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union


class UserProgress(BaseModel):
    id: Optional[str] = None
    user_id: str
    lesson_id: str
    score: int = 0
    completed: Optional[bool] = False
    completed_at: Optional[str] = None
    attempts: Optional[int] = 0

    class Config:
        from_attributes = True


class ActivityResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    activity_type: Optional[str] = Field(default=None, alias="activityType")
    activity_order: Optional[int] = Field(default=None, alias="activityOrder")
    score: Union[int, float] = 0
    max_score: Union[int, float] = Field(default=0, alias="maxScore")
    attempts: int = 1
    time_spent: int = Field(default=0, alias="timeSpent")
    completed: bool = True
    completed_at: int = Field(alias="completedAt")  # epoch milliseconds
    answers: Optional[Any] = None
    feedback: Optional[Any] = None


class LessonSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    level: str
    topic: str
    lesson_number: int
    user_progress: Optional[UserProgress] = Field(default=None, alias="userProgress")


class LessonListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    level: str
    lessons: List[LessonSummary]
    total_lessons: int = Field(alias="totalLessons")


class LessonDetailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    lesson: Dict[str, Any]
    user_progress: Optional[UserProgress] = Field(default=None, alias="userProgress")
    activity_results: Optional[List[ActivityResult]] = Field(default=None, alias="activityResults")
    activities: List[Dict[str, Any]]
