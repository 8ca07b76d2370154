from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional, Union


class SubmitActivityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lesson_id: Optional[str] = Field(default=None, alias="lessonId")
    activity_id: Optional[str] = Field(default=None, alias="activityId")
    activity_type: Optional[str] = Field(default=None, alias="activityType")
    activity_order: Optional[int] = Field(default=None, alias="activityOrder")
    score: Union[int, float] = 0
    max_score: Union[int, float] = Field(default=0, alias="maxScore")
    attempts: int = 1
    time_spent: int = Field(default=0, alias="timeSpent")
    answers: Optional[Any] = None
    feedback: Optional[Any] = None
    is_final: bool = Field(default=False, alias="isFinal")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")


class FinalizeLessonRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lesson_id: Optional[str] = Field(default=None, alias="lessonId")


class AdvanceLevelResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    can_advance: bool = Field(alias="canAdvance")
    from_level: str = Field(alias="fromLevel")
    to_level: Optional[str] = Field(default=None, alias="toLevel")
    completed_lessons: int = Field(alias="completedLessons")
    total_lessons: int = Field(alias="totalLessons")
