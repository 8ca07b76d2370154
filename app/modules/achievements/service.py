import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.learning_config import REQUIREMENT_TYPES, level_index
from app.core.utils import parse_timestamp, percentage, utc_now, utc_now_iso
from app.modules.progress.streaks import completion_dates, current_streak

logger = logging.getLogger(__name__)


class AchievementService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _catalogue(self) -> List[Dict[str, Any]]:
        result = self.supabase.table("achievements")\
            .select("*")\
            .execute()
        return result.data or []

    def _earned(self, user_id: str) -> Dict[str, str]:
        """achievement_id -> earned_at"""
        result = self.supabase.table("user_achievements")\
            .select("achievement_id, earned_at")\
            .eq("user_id", user_id)\
            .execute()
        return {row["achievement_id"]: row.get("earned_at") for row in result.data or []}

    def user_metrics(self, user_id: str) -> Dict[str, int]:
        """Current value of every requirement type for a user."""
        user = self.supabase.table("users")\
            .select("id, level, total_stars")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        user_row = user.data[0] if user.data else {}
        progress = self.supabase.table("user_progress")\
            .select("lesson_id, completed, completed_at")\
            .eq("user_id", user_id)\
            .eq("completed", True)\
            .execute()
        progress_rows = progress.data or []
        evaluations = self.supabase.table("evaluation_results")\
            .select("id")\
            .eq("user_id", user_id)\
            .execute()
        return {
            "lessons_completed": len({row["lesson_id"] for row in progress_rows}),
            "stars_earned": user_row.get("total_stars") or 0,
            "streak_days": current_streak(completion_dates(progress_rows), utc_now().date()),
            "level_reached": level_index(user_row.get("level")),
            "evaluation_completed": len(evaluations.data or []),
        }

    def list_for_user(self, user_id: str) -> Dict[str, Any]:
        try:
            catalogue = self._catalogue()
            earned = self._earned(user_id)
            metrics = self.user_metrics(user_id)
        except Exception as e:
            logger.error(f"Failed to load achievements for user {user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load achievements")

        achievements = []
        for achievement in catalogue:
            target = achievement.get("requirement_value") or 0
            value = metrics.get(achievement.get("requirement_type"), 0)
            achievements.append({
                **achievement,
                "earned_at": earned.get(achievement["id"]),
                "progress": min(value, target) if target else value,
                "target": target,
            })
        achievements.sort(key=lambda a: (
            a["earned_at"] is None,
            a.get("category") or "",
            -(a.get("points") or 0),
        ))

        by_category: Dict[str, List[Dict[str, Any]]] = OrderedDict()
        for achievement in achievements:
            by_category.setdefault(achievement.get("category") or "other", []).append(achievement)

        earned_list = [a for a in achievements if a["earned_at"] is not None]
        last_earned = None
        if earned_list:
            latest = max(earned_list, key=lambda a: parse_timestamp(a["earned_at"]) or utc_now())
            last_earned = {
                "code": latest.get("code"),
                "name": latest.get("name"),
                "icon": latest.get("icon"),
                "earnedAt": latest["earned_at"],
            }
        return {
            "achievements": achievements,
            "achievementsByCategory": by_category,
            "lastEarned": last_earned,
            "stats": {
                "total": len(achievements),
                "earned": len(earned_list),
                "percentage": percentage(len(earned_list), len(achievements)),
            },
        }

    def recent(self, user_id: str, limit: int = 4) -> List[Dict[str, Any]]:
        rows = self.supabase.table("user_achievements")\
            .select("achievement_id, earned_at")\
            .eq("user_id", user_id)\
            .order("earned_at", desc=True)\
            .limit(limit)\
            .execute().data or []
        if not rows:
            return []
        catalogue = self.supabase.table("achievements")\
            .select("id, code, name, icon")\
            .in_("id", [row["achievement_id"] for row in rows])\
            .execute()
        by_id = {a["id"]: a for a in catalogue.data or []}
        recent = []
        for row in rows:
            achievement = by_id.get(row["achievement_id"])
            if achievement:
                recent.append({
                    "code": achievement.get("code"),
                    "name": achievement.get("name"),
                    "icon": achievement.get("icon"),
                    "earnedAt": row.get("earned_at"),
                })
        return recent

    def check_and_award(self, user_id: str) -> List[Dict[str, Optional[str]]]:
        """Award every achievement whose requirement is now met; returns the new ones."""
        catalogue = self._catalogue()
        earned = self._earned(user_id)
        metrics = self.user_metrics(user_id)
        newly_earned = []
        for achievement in catalogue:
            if achievement["id"] in earned:
                continue
            requirement_type = achievement.get("requirement_type")
            if requirement_type not in REQUIREMENT_TYPES:
                logger.warning(f"Skipping achievement {achievement.get('code')} with unknown requirement type {requirement_type}")
                continue
            target = achievement.get("requirement_value") or 0
            if metrics[requirement_type] < target:
                continue
            self.supabase.table("user_achievements").upsert({
                "user_id": user_id,
                "achievement_id": achievement["id"],
                "earned_at": utc_now_iso(),
            }, on_conflict="user_id,achievement_id").execute()
            newly_earned.append({
                "code": achievement.get("code"),
                "name": achievement.get("name"),
                "icon": achievement.get("icon"),
            })
        if newly_earned:
            logger.info(f"User {user_id} earned {len(newly_earned)} achievement(s)")
        return newly_earned
