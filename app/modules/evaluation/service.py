import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.learning_config import (
    DEFAULT_EVALUATION_TEST_ID, EVALUATION_PASSING_SCORE, level_from_score
)
from app.core.sanitizers import sanitize_for_database, sanitize_level, sanitize_string
from app.core.utils import percentage, utc_now_iso
from app.modules.evaluation.schemas import (
    EvaluationTestData, EvaluationTestResultRequest, SubmitEvaluationRequest
)

logger = logging.getLogger(__name__)

TEST_FIELDS = [
    "id", "test_name", "test_type", "description", "passing_score",
    "allowed_time", "is_active", "questions", "created_at", "updated_at",
]
STUDENT_TEST_FIELDS = [
    "id", "test_name", "test_type", "description", "passing_score",
    "allowed_time", "questions",
]


class EvaluationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_test_row(self, test_id: str, active_only: bool = False) -> Optional[Dict[str, Any]]:
        query = self.supabase.table("evaluation_test")\
            .select("*")\
            .eq("id", test_id)
        if active_only:
            query = query.eq("is_active", True)
        result = query.limit(1).execute()
        return result.data[0] if result.data else None

    def get_active_test(self, test_id: Optional[str]) -> Dict[str, Any]:
        """Test payload in both shapes the SPA reads: `test` for the editor, `data` for students."""
        test_id = sanitize_string(test_id, 50) or DEFAULT_EVALUATION_TEST_ID
        try:
            row = self.get_test_row(test_id, active_only=True)
        except Exception as e:
            logger.error(f"Failed to load evaluation test {test_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load evaluation test")
        if not row:
            raise HTTPException(status_code=404, detail="Test not found")
        return {
            "test": {field: row.get(field) for field in TEST_FIELDS},
            "data": {field: row.get(field) for field in STUDENT_TEST_FIELDS},
        }

    def submit(self, user_id: str, submission: SubmitEvaluationRequest) -> Dict[str, Any]:
        results = sanitize_for_database(submission.results)
        if not results or not submission.calculated_level:
            raise HTTPException(status_code=400, detail="Missing required fields: results, calculatedLevel")
        level = sanitize_level(submission.calculated_level)
        if not level:
            raise HTTPException(status_code=400, detail="Invalid level")
        completed_at = sanitize_string(submission.completed_at, 50) or utc_now_iso()

        evaluation = results
        if isinstance(results, dict) and isinstance(results.get("evaluation"), dict):
            evaluation = results["evaluation"]
        if not isinstance(evaluation, dict):
            evaluation = {}
        total_score = evaluation.get("score") or 0
        max_score = evaluation.get("maxScore") or 0
        time_spent = evaluation.get("timeSpent") or None
        overall_percentage = percentage(total_score, max_score)
        question_results = {
            "evaluation": evaluation,
            "answers": evaluation.get("answers") or {},
        }

        try:
            inserted = self.supabase.table("evaluation_results").insert({
                "user_id": user_id,
                "test_id": DEFAULT_EVALUATION_TEST_ID,
                "overall_score": total_score,
                "max_score": max_score,
                "overall_percentage": overall_percentage,
                "passed": overall_percentage >= EVALUATION_PASSING_SCORE,
                "time_spent": time_spent,
                "calculated_level": level,
                "question_results": question_results,
                "completed_at": completed_at,
            }).execute()
            if not inserted.data:
                raise HTTPException(status_code=500, detail="Failed to save evaluation results")
            evaluation_id = inserted.data[0]["id"]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to save evaluation for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to save evaluation results")

        eval_test_result = {
            "evaluationId": evaluation_id,
            "calculatedLevel": level,
            "overallScore": total_score,
            "maxScore": max_score,
            "overallPercentage": overall_percentage,
            "completedAt": completed_at,
            "questionResults": question_results,
        }
        try:
            self.supabase.table("users")\
                .update({"level": level, "eval_test_result": eval_test_result, "updated_at": utc_now_iso()})\
                .eq("id", user_id)\
                .execute()
        except Exception as e:
            # The result row is saved; the level can be recomputed from it
            logger.error(f"Failed to update level for user {user_id}: {e}")

        logger.info(f"Evaluation {evaluation_id} saved user={user_id} level={level} percentage={overall_percentage}")
        return {
            "evaluationId": evaluation_id,
            "calculatedLevel": level,
            "overallScore": total_score,
            "maxScore": max_score,
            "overallPercentage": overall_percentage,
        }

    def submit_test_result(self, user_id: str, data: EvaluationTestResultRequest) -> Dict[str, Any]:
        if not data.test_id or data.overall_score is None or data.max_score is None:
            raise HTTPException(status_code=400, detail="Missing required fields")
        try:
            test = self.get_test_row(data.test_id)
            if not test:
                raise HTTPException(status_code=404, detail="Test not found")

            score_percentage = data.overall_percentage
            if score_percentage is None:
                score_percentage = percentage(data.overall_score, data.max_score)
            passed = score_percentage >= (test.get("passing_score") or EVALUATION_PASSING_SCORE)
            completed_at = utc_now_iso()

            inserted = self.supabase.table("evaluation_results").insert({
                "user_id": user_id,
                "test_id": data.test_id,
                "overall_score": data.overall_score,
                "max_score": data.max_score,
                "overall_percentage": score_percentage,
                "passed": passed,
                "time_spent": data.time_spent,
                "question_results": sanitize_for_database(data.question_results),
                "completed_at": completed_at,
            }).execute()
            if not inserted.data:
                raise HTTPException(status_code=500, detail="Failed to save results")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to save test result for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to save results")

        if data.update_user_level:
            level = level_from_score(score_percentage)
            try:
                self.supabase.table("users").update({
                    "level": level,
                    "eval_test_result": {
                        "score": data.overall_score,
                        "max_score": data.max_score,
                        "percentage": score_percentage,
                        "level": level,
                        "completed_at": completed_at,
                    },
                }).eq("id", user_id).execute()
            except Exception as e:
                logger.error(f"Failed to update level for user {user_id}: {e}")

        return {
            "data": inserted.data[0],
            "passed": passed,
            "message": "Test passed!" if passed else "Test completed",
        }

    def list_tests(self) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("evaluation_test")\
                .select("*")\
                .order("created_at", desc=True)\
                .execute()
            return result.data or []
        except Exception as e:
            logger.error(f"Failed to list evaluation tests: {e}")
            raise HTTPException(status_code=500, detail="Failed to load evaluation tests")

    def get_test(self, test_id: str) -> Dict[str, Any]:
        try:
            row = self.get_test_row(test_id)
        except Exception as e:
            logger.error(f"Failed to load evaluation test {test_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load evaluation test")
        if not row:
            raise HTTPException(status_code=404, detail="Evaluation test not found")
        return row

    def save_test(self, test: Optional[EvaluationTestData]) -> Dict[str, Any]:
        """Update the test named by `id`, or upsert the default test when no id is given."""
        if test is None:
            raise HTTPException(status_code=400, detail="Test data is required")
        if not test.test_name or test.questions is None:
            raise HTTPException(status_code=400, detail="Missing required fields: test_name and questions")
        record = {
            "test_name": sanitize_string(test.test_name, 200),
            "test_type": test.test_type or "comprehensive",
            "description": test.description,
            "passing_score": test.passing_score or EVALUATION_PASSING_SCORE,
            "allowed_time": test.allowed_time or 45,
            "is_active": test.is_active if test.is_active is not None else True,
            "questions": test.questions,
            "updated_at": utc_now_iso(),
        }
        try:
            if test.id:
                result = self.supabase.table("evaluation_test")\
                    .update(record)\
                    .eq("id", test.id)\
                    .execute()
                if not result.data:
                    raise HTTPException(status_code=404, detail="Evaluation test not found")
            else:
                result = self.supabase.table("evaluation_test")\
                    .upsert({"id": DEFAULT_EVALUATION_TEST_ID, **record}, on_conflict="id")\
                    .execute()
            logger.info(f"Evaluation test {test.id or DEFAULT_EVALUATION_TEST_ID} saved")
            return result.data[0] if result.data else record
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to save evaluation test: {e}")
            raise HTTPException(status_code=500, detail="Failed to save evaluation test")
