import logging
import math
from collections import Counter, defaultdict
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.learning_config import CEFR_LEVELS, activity_group, level_index
from app.core.sanitizers import contains_pattern
from app.core.utils import average, parse_timestamp, percentage, round_half_up, utc_now, utc_now_iso
from app.database.supabase_client import ilike_any, select_all

logger = logging.getLogger(__name__)

USER_LIST_COLUMNS = (
    "id, email, username, first_name, last_name, level, role, current_lesson, "
    "total_stars, created_at, last_login, email_verified"
)
SORTABLE_USER_COLUMNS = ["email", "username", "level", "total_stars", "last_login", "email_verified", "created_at"]
SEARCHABLE_USER_COLUMNS = ["email", "username", "first_name", "last_name"]
NOT_ASSESSED = "Not Assessed"
MAX_PAGE_SIZE = 200

STATS_PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}

# Tables holding per-user rows, deleted before the user itself
USER_OWNED_TABLES = [
    "user_achievements",
    "lesson_activity_results",
    "evaluation_results",
    "user_progress",
    "user_sessions",
]


class AdminService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_user_or_404(self, user_id: str) -> Dict[str, Any]:
        result = self.supabase.table("users")\
            .select("id, email, username")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=404, detail="User not found")
        return result.data[0]

    def list_users(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        sort: str = "created_at",
        order: str = "desc",
        level: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        sort_column = sort if sort in SORTABLE_USER_COLUMNS else "created_at"
        descending = (order or "").lower() != "asc"
        offset = (page - 1) * limit

        try:
            query = self.supabase.table("users").select(USER_LIST_COLUMNS, count="exact")
            if level == NOT_ASSESSED:
                query = query.is_("level", "null")
            elif level:
                query = query.eq("level", level)
            pattern = contains_pattern(search)
            if pattern:
                query = query.or_(ilike_any(SEARCHABLE_USER_COLUMNS, pattern))
            # Missing values go last in either direction; id keeps pages stable
            result = query.order(sort_column, desc=descending, nullsfirst=False)\
                .order("id")\
                .limit(limit)\
                .offset(offset)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to list users: {e}")
            raise HTTPException(status_code=500, detail="Failed to retrieve users")

        total = result.count or 0
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "users": result.data or [],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": total_pages,
                "hasNext": page < total_pages,
                "hasPrev": page > 1,
            },
        }

    def delete_user(self, user_id: str) -> Dict[str, Any]:
        user = self._get_user_or_404(user_id)
        try:
            for table in USER_OWNED_TABLES:
                self.supabase.table(table).delete().eq("user_id", user_id).execute()
            self.supabase.table("lesson_history").delete().eq("changed_by", user_id).execute()
            self.supabase.table("users").delete().eq("id", user_id).execute()
        except Exception as e:
            logger.error(f"Failed to delete user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete user")
        logger.info(f"Admin deleted user {user['email']} ({user.get('username')})")
        return {
            "message": f"User {user['email']} has been deleted successfully",
            "deletedUser": user,
        }

    def revoke_sessions(self, user_id: str) -> Dict[str, Any]:
        user = self._get_user_or_404(user_id)
        try:
            deleted = self.supabase.table("user_sessions")\
                .delete()\
                .eq("user_id", user_id)\
                .execute()
            now = utc_now_iso()
            self.supabase.table("users")\
                .update({"session_revoked_at": now, "updated_at": now})\
                .eq("id", user_id)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to revoke sessions for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to revoke user sessions")
        deleted_count = len(deleted.data or [])
        logger.info(f"Admin revoked all sessions for user {user['email']}: {deleted_count} session(s) deleted")
        return {
            "message": f"All sessions for user {user['email']} have been revoked",
            "deletedSessions": deleted_count,
            "affectedUser": user,
        }

    def user_lessons(self, user_id: str) -> Dict[str, Any]:
        """Completed lessons of a user with per-activity results and time spent."""
        try:
            progress_rows = self.supabase.table("user_progress")\
                .select("lesson_id, completed, score, completed_at, attempts")\
                .eq("user_id", user_id)\
                .eq("completed", True)\
                .execute().data or []
            lesson_ids = [row["lesson_id"] for row in progress_rows]
            if not lesson_ids:
                return {"lessons": [], "totalCompleted": 0}
            lessons = self.supabase.table("lessons")\
                .select("id, level, topic, lesson_number")\
                .in_("id", lesson_ids)\
                .execute().data or []
            result_rows = self.supabase.table("lesson_activity_results")\
                .select("lesson_id, activity_type, activity_order, score, max_score, attempts, "
                        "time_spent, completed_at, feedback, answers")\
                .eq("user_id", user_id)\
                .in_("lesson_id", lesson_ids)\
                .order("activity_order")\
                .execute().data or []
        except Exception as e:
            logger.error(f"Failed to load lessons for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load user lessons")

        results_by_lesson = defaultdict(list)
        for row in result_rows:
            results_by_lesson[row["lesson_id"]].append(row)
        lessons_by_id = {lesson["id"]: lesson for lesson in lessons}

        details = []
        for progress in progress_rows:
            lesson = lessons_by_id.get(progress["lesson_id"])
            if not lesson:
                continue
            activity_results = results_by_lesson.get(lesson["id"], [])
            total_score = sum(row.get("score") or 0 for row in activity_results)
            total_max = sum(row.get("max_score") or 0 for row in activity_results)
            details.append({
                **lesson,
                "completed": True,
                "score": percentage(total_score, total_max) if total_max else (progress.get("score") or 0),
                "completed_at": progress.get("completed_at"),
                "attempts": progress.get("attempts"),
                "activityResults": activity_results,
                "time_spent": sum(row.get("time_spent") or 0 for row in activity_results),
            })
        details.sort(key=lambda lesson: (level_index(lesson.get("level")), lesson.get("lesson_number") or 0))
        return {"lessons": details, "totalCompleted": len(details)}

    def _count(self, table: str, narrow: Optional[Callable[[Any], Any]] = None) -> int:
        query = self.supabase.table(table).select("id", count="exact")
        if narrow is not None:
            query = narrow(query)
        return query.limit(1).execute().count or 0

    def _rows(self, table: str, columns: str, narrow: Optional[Callable[[Any], Any]] = None) -> List[Dict[str, Any]]:
        def build():
            query = self.supabase.table(table).select(columns)
            if narrow is not None:
                query = narrow(query)
            return query.order("id")
        return select_all(build)

    def stats(self, period: Optional[str] = None) -> Dict[str, Any]:
        period = period if period in STATS_PERIOD_DAYS else "month"
        now = utc_now()
        period_start = (now - timedelta(days=STATS_PERIOD_DAYS[period])).isoformat()
        day_ago = (now - timedelta(days=1)).isoformat()
        week_ago = (now - timedelta(days=7)).isoformat()
        try:
            total_users = self._count("users")
            active_today = self._count("users", lambda q: q.gte("last_login", day_ago))
            new_this_week = self._count("users", lambda q: q.gte("created_at", week_ago))
            users_before_period = self._count("users", lambda q: q.lt("created_at", period_start))
            user_levels = {
                level: self._count("users", lambda q, level=level: q.eq("level", level))
                for level in CEFR_LEVELS
            }
            new_users = self._rows("users", "id, created_at", lambda q: q.gte("created_at", period_start))
            recent_logins = self._rows("users", "id, last_login", lambda q: q.gte("last_login", period_start))
            stars = self._rows("users", "id, total_stars", lambda q: q.gt("total_stars", 0))
            progress = self._rows(
                "user_progress", "lesson_id, score, completed_at", lambda q: q.eq("completed", True)
            )
            evaluations = self._rows(
                "evaluation_results", "overall_percentage, passed, time_spent, calculated_level"
            )
            activities = self._rows("lesson_activity_results", "user_id, activity_type")
        except Exception as e:
            logger.error(f"Failed to load admin stats: {e}")
            raise HTTPException(status_code=500, detail="Failed to load statistics")

        def since(value: Any, start: str) -> bool:
            parsed = parse_timestamp(value)
            return parsed is not None and parsed >= parse_timestamp(start)

        assessed = sum(user_levels.values())
        level_total = sum(level_index(level) * count for level, count in user_levels.items())
        average_level = CEFR_LEVELS[round_half_up(level_total / assessed) - 1] if assessed else "A1"
        passed_evaluations = len([row for row in evaluations if row.get("passed")])
        evaluation_levels = Counter(row.get("calculated_level") for row in evaluations)
        by_type = Counter(activity_group(row.get("activity_type")) or "other" for row in activities)

        return {
            "stats": {
                "users": {
                    "total": total_users,
                    "activeToday": active_today,
                    "newThisWeek": new_this_week,
                    "newInPeriod": len(new_users),
                    "averageLevel": average_level,
                    "levelDistribution": user_levels,
                },
                "lessons": {
                    "totalCompletions": len(progress),
                    "uniqueLessons": len({row["lesson_id"] for row in progress}),
                    "completedInPeriod": len([p for p in progress if since(p.get("completed_at"), period_start)]),
                    "averageScore": average([row.get("score") or 0 for row in progress]),
                    "totalStarsEarned": sum(user.get("total_stars") or 0 for user in stars),
                },
                "evaluations": {
                    "total": len(evaluations),
                    "passed": passed_evaluations,
                    "failed": len(evaluations) - passed_evaluations,
                    "passRate": percentage(passed_evaluations, len(evaluations)),
                    "averageScore": average([row.get("overall_percentage") or 0 for row in evaluations]),
                    "averageTimeSpent": round_half_up(average(
                        [row["time_spent"] for row in evaluations if row.get("time_spent")]
                    )),
                    "levelDistribution": {
                        level: evaluation_levels.get(level, 0) for level in ["Pre-A1"] + CEFR_LEVELS
                    },
                },
                "activities": {
                    "total": len(activities),
                    "activeUsers": len({row.get("user_id") for row in activities}),
                    "byType": dict(by_type),
                },
            },
            "charts": {
                "userGrowth": self._user_growth(new_users, users_before_period, period),
                "activity": self._activity(recent_logins, period),
                "period": period,
            },
        }

    @staticmethod
    def _bucket(value: Any, period: str) -> Optional[str]:
        parsed = parse_timestamp(value)
        if parsed is None:
            return None
        return parsed.strftime("%Y-%m") if period == "year" else parsed.date().isoformat()

    def _user_growth(self, new_users: List[Dict[str, Any]], running: int, period: str) -> List[Dict[str, Any]]:
        """Signups per bucket in the period with the running total, starting from users created before it."""
        new_by_bucket = Counter(self._bucket(user.get("created_at"), period) for user in new_users)
        new_by_bucket.pop(None, None)
        growth = []
        for bucket in sorted(new_by_bucket):
            running += new_by_bucket[bucket]
            growth.append({"date": bucket, "newUsers": new_by_bucket[bucket], "totalUsers": running})
        return growth

    def _activity(self, recent_logins: List[Dict[str, Any]], period: str) -> List[Dict[str, Any]]:
        active_by_bucket = Counter(self._bucket(user.get("last_login"), period) for user in recent_logins)
        active_by_bucket.pop(None, None)
        return [{"date": bucket, "activeUsers": active_by_bucket[bucket]} for bucket in sorted(active_by_bucket)]
