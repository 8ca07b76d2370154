import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.learning_config import (
    CEFR_LEVELS, DAILY_GOAL_LESSONS, FINAL_ACTIVITY_TYPE, LESSONS_PER_TITLE, MAX_TITLE,
    PASSING_PERCENTAGE, TITLE_SEQUENCES, WEEKLY_GOAL_DAYS, next_level, stars_for_percentage
)
from app.core.sanitizers import is_uuid, sanitize_for_database
from app.core.utils import parse_timestamp, percentage, utc_now, utc_now_iso
from app.modules.achievements.service import AchievementService
from app.modules.progress.schemas import SubmitActivityRequest
from app.modules.progress.streaks import completion_dates, current_streak, weekly_progress

logger = logging.getLogger(__name__)


def title_progress(level: str, level_completed: int) -> Dict[str, Any]:
    """Title earned for the lessons completed in a level, and what unlocks next."""
    titles = TITLE_SEQUENCES.get(level) or TITLE_SEQUENCES["A1"]
    index = min(level_completed // LESSONS_PER_TITLE, len(titles) - 1)
    current = titles[index]
    if index < len(titles) - 1:
        return {
            "currentTitle": current,
            "nextTitle": titles[index + 1],
            "nextTitleLessonsNeeded": (index + 1) * LESSONS_PER_TITLE - level_completed,
        }
    if current == MAX_TITLE:
        return {"currentTitle": current, "nextTitle": "Max Level Reached", "nextTitleLessonsNeeded": None}
    upcoming = next_level(level)
    return {
        "currentTitle": current,
        "nextTitle": TITLE_SEQUENCES[upcoming][0] if upcoming else MAX_TITLE,
        "nextTitleLessonsNeeded": None,
    }


class ProgressService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.achievements = AchievementService(supabase)

    def _progress_row(self, user_id: str, lesson_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("user_progress")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("lesson_id", lesson_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _resolve_activity_id(self, lesson_id: str, activity_order: int, supplied: Optional[str]) -> Optional[str]:
        if is_uuid(supplied):
            return supplied
        result = self.supabase.table("lesson_activities")\
            .select("id")\
            .eq("lesson_id", lesson_id)\
            .eq("activity_order", activity_order)\
            .eq("active", True)\
            .limit(1)\
            .execute()
        return result.data[0]["id"] if result.data else None

    def _save_activity_result(self, user_id: str, activity_id: Optional[str], data: SubmitActivityRequest, completed_at: str):
        record = {
            "user_id": user_id,
            "lesson_id": data.lesson_id,
            "activity_id": activity_id,
            "activity_type": data.activity_type,
            "activity_order": data.activity_order,
            "score": data.score or 0,
            "max_score": data.max_score or 0,
            "attempts": data.attempts,
            "time_spent": data.time_spent,
            "completed_at": completed_at,
            "answers": sanitize_for_database(data.answers or {}),
            "feedback": sanitize_for_database(data.feedback or {}),
        }
        if activity_id:
            self.supabase.table("lesson_activity_results")\
                .upsert(record, on_conflict="user_id,lesson_id,activity_id")\
                .execute()
            return
        # No activity id: match on the order instead
        existing = self.supabase.table("lesson_activity_results")\
            .select("id")\
            .eq("user_id", user_id)\
            .eq("lesson_id", data.lesson_id)\
            .eq("activity_order", data.activity_order)\
            .is_("activity_id", "null")\
            .limit(1)\
            .execute()
        if existing.data:
            self.supabase.table("lesson_activity_results")\
                .update(record)\
                .eq("id", existing.data[0]["id"])\
                .execute()
        else:
            self.supabase.table("lesson_activity_results").insert(record).execute()

    def submit_activity(self, user_id: str, data: SubmitActivityRequest) -> None:
        if not data.lesson_id or not data.activity_type or data.activity_order is None:
            raise HTTPException(
                status_code=400,
                detail="Missing required fields: lessonId, activityType, activityOrder",
            )
        is_final = data.is_final or data.activity_type == FINAL_ACTIVITY_TYPE
        completed_at = (parse_timestamp(data.completed_at) or utc_now()).isoformat()
        try:
            activity_id = self._resolve_activity_id(data.lesson_id, data.activity_order, data.activity_id)
            self._save_activity_result(user_id, activity_id, data, completed_at)

            progress = self._progress_row(user_id, data.lesson_id)
            if progress:
                update = {
                    "score": (progress.get("score") or 0) + (data.score or 0),
                    "attempts": data.attempts,
                    "updated_at": utc_now_iso(),
                }
                if is_final:
                    update["completed"] = True
                    update["completed_at"] = completed_at
                self.supabase.table("user_progress")\
                    .update(update)\
                    .eq("id", progress["id"])\
                    .execute()
            else:
                self.supabase.table("user_progress").upsert({
                    "user_id": user_id,
                    "lesson_id": data.lesson_id,
                    "score": data.score or 0,
                    "completed": is_final,
                    "completed_at": completed_at if is_final else None,
                    "attempts": data.attempts,
                }, on_conflict="user_id,lesson_id").execute()
            logger.info(
                f"Activity result saved user={user_id} lesson={data.lesson_id} "
                f"order={data.activity_order} final={is_final}"
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to submit activity for lesson {data.lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to submit lesson activity")

    def finalize_lesson(self, user_id: str, lesson_id: Optional[str]) -> Dict[str, Any]:
        if not lesson_id:
            raise HTTPException(status_code=400, detail="Lesson ID is required")
        try:
            results = self.supabase.table("lesson_activity_results")\
                .select("score, max_score")\
                .eq("user_id", user_id)\
                .eq("lesson_id", lesson_id)\
                .execute().data or []
            total_score = sum(row.get("score") or 0 for row in results)
            max_score = sum(row.get("max_score") or 0 for row in results)
            score_percentage = percentage(total_score, max_score)
            passed = score_percentage >= PASSING_PERCENTAGE
            stars = stars_for_percentage(score_percentage) if passed else 0
            completed_at = utc_now_iso()

            progress = self._progress_row(user_id, lesson_id)
            if progress:
                self.supabase.table("user_progress").update({
                    "score": total_score,
                    "completed": True,
                    "completed_at": completed_at,
                    "attempts": (progress.get("attempts") or 0) + 1,
                    "updated_at": completed_at,
                }).eq("id", progress["id"]).execute()
            else:
                self.supabase.table("user_progress").upsert({
                    "user_id": user_id,
                    "lesson_id": lesson_id,
                    "score": total_score,
                    "completed": True,
                    "completed_at": completed_at,
                    "attempts": 1,
                }, on_conflict="user_id,lesson_id").execute()

            if passed and stars:
                # Atomic increment, see increment_total_stars in models.py
                self.supabase.rpc("increment_total_stars", {"p_user_id": user_id, "p_amount": stars}).execute()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to finalize lesson {lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to finalize lesson")

        newly_earned: List[Dict[str, Any]] = []
        try:
            newly_earned = self.achievements.check_and_award(user_id)
        except Exception as e:
            # The lesson is already recorded
            logger.error(f"Error checking achievements for user {user_id}: {e}")

        logger.info(f"Lesson {lesson_id} finalized user={user_id} percentage={score_percentage} stars={stars}")
        return {
            "lessonId": lesson_id,
            "totalScore": total_score,
            "maxScore": max_score,
            "percentage": score_percentage,
            "passed": passed,
            "starsEarned": stars,
            "completedActivities": len(results),
            "completedAt": completed_at,
            "newlyEarnedAchievements": newly_earned,
        }

    def _completed_lesson_ids(self, user_id: str, lesson_ids: List[str]) -> set:
        if not lesson_ids:
            return set()
        result = self.supabase.table("user_progress")\
            .select("lesson_id")\
            .eq("user_id", user_id)\
            .eq("completed", True)\
            .in_("lesson_id", lesson_ids)\
            .execute()
        return {row["lesson_id"] for row in result.data or []}

    def advance_level(self, user: Dict[str, Any]) -> Dict[str, Any]:
        level = user.get("level")
        if not level:
            raise HTTPException(status_code=400, detail="User has no level set")
        if level not in CEFR_LEVELS:
            raise HTTPException(status_code=400, detail="Unknown level")
        try:
            lessons = self.supabase.table("lessons")\
                .select("id")\
                .eq("level", level)\
                .execute().data or []
            if not lessons:
                raise HTTPException(status_code=400, detail="No lessons for this level")
            completed = len(self._completed_lesson_ids(user["id"], [lesson["id"] for lesson in lessons]))
            can_advance = completed >= len(lessons)
            new_level = next_level(level) if can_advance else None
            if new_level:
                self.supabase.table("users")\
                    .update({"level": new_level, "updated_at": utc_now_iso()})\
                    .eq("id", user["id"])\
                    .execute()
                logger.info(f"User {user['id']} advanced from {level} to {new_level}")
            return {
                "canAdvance": can_advance,
                "fromLevel": level,
                "toLevel": new_level,
                "completedLessons": completed,
                "totalLessons": len(lessons),
            }
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to advance level for user {user['id']}: {e}")
            raise HTTPException(status_code=500, detail="Failed to advance level")

    def dashboard(self, user: Dict[str, Any]) -> Dict[str, Any]:
        try:
            lessons = self.supabase.table("lessons")\
                .select("id, level, topic, lesson_number")\
                .execute().data or []
            progress_rows = self.supabase.table("user_progress")\
                .select("*")\
                .eq("user_id", user["id"])\
                .execute().data or []
        except Exception as e:
            logger.error(f"Failed to load dashboard for user {user['id']}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load dashboard data")

        progress_by_lesson = {row["lesson_id"]: row for row in progress_rows}
        completed_rows = []
        for lesson in lessons:
            row = progress_by_lesson.get(lesson["id"])
            if row and row.get("completed"):
                completed_rows.append({**row, "level": lesson.get("level"), "topic": lesson.get("topic")})

        total_lessons = len(lessons)
        completed_lessons = len(completed_rows)
        overall_percentage = percentage(completed_lessons, total_lessons)

        level = user.get("level")
        level_total = len([lesson for lesson in lessons if lesson.get("level") == level]) if level else 0
        level_completed = len([row for row in completed_rows if row["level"] == level]) if level else 0
        level_progress = percentage(level_completed, level_total)

        if level:
            titles = title_progress(level, level_completed)
        else:
            titles = {
                "currentTitle": "Take Evaluation",
                "nextTitle": "Complete Assessment",
                "nextTitleLessonsNeeded": None,
            }

        recent = sorted(
            completed_rows,
            key=lambda row: parse_timestamp(row.get("completed_at")) or utc_now().replace(year=1970),
            reverse=True,
        )[:5]
        recent_lessons = [
            {
                "id": row["lesson_id"],
                "title": row.get("topic"),
                "level": row.get("level"),
                "score": row.get("score"),
                "completedAt": row.get("completed_at"),
                "stars": 1,
            }
            for row in recent
        ]

        today = utc_now().date()
        dates = completion_dates(completed_rows)

        last_earned: List[Dict[str, Any]] = []
        try:
            last_earned = self.achievements.recent(user["id"], limit=4)
        except Exception as e:
            logger.error(f"Error fetching last achievements for user {user['id']}: {e}")

        return {
            "user": user,
            "progress": {
                "currentLevel": level or "Not Assessed",
                "levelProgress": level_progress if level else 0,
                "levelCompleted": level_completed,
                "levelTotal": level_total,
                "completionPercentage": level_progress if level else overall_percentage,
                "overallCompletionPercentage": overall_percentage,
                **titles,
                "totalStars": completed_lessons,
                "totalLessons": total_lessons,
                "completedLessons": completed_lessons,
            },
            "recentLessons": recent_lessons,
            "weeklyGoal": WEEKLY_GOAL_DAYS,
            "weeklyProgress": weekly_progress(dates, today),
            "currentStreak": current_streak(dates, today),
            "dailyGoal": DAILY_GOAL_LESSONS,
            "dailyProgress": 1 if completed_lessons > 0 else 0,
            "evalTestResult": user.get("evalTestResult"),
            "lastEarnedAchievements": last_earned,
        }
