from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional, Union


class SubmitEvaluationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    results: Optional[Any] = None
    calculated_level: Optional[str] = Field(default=None, alias="calculatedLevel")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")


class SubmitEvaluationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    evaluation_id: Optional[str] = Field(default=None, alias="evaluationId")
    calculated_level: str = Field(alias="calculatedLevel")
    overall_score: Union[int, float] = Field(alias="overallScore")
    max_score: Union[int, float] = Field(alias="maxScore")
    overall_percentage: int = Field(alias="overallPercentage")


class EvaluationTestResultRequest(BaseModel):
    test_id: Optional[str] = None
    overall_score: Optional[Union[int, float]] = None
    max_score: Optional[Union[int, float]] = None
    overall_percentage: Optional[Union[int, float]] = None
    time_spent: Optional[int] = None
    question_results: Optional[Any] = None
    update_user_level: bool = False


class EvaluationTestData(BaseModel):
    id: Optional[str] = None
    test_name: Optional[str] = None
    test_type: Optional[str] = None
    description: Optional[str] = None
    passing_score: Optional[int] = None
    allowed_time: Optional[int] = None
    is_active: Optional[bool] = None
    questions: Optional[List[Any]] = None
