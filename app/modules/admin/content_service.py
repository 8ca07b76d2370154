import logging
import math
from collections import defaultdict
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.learning_config import CEFR_LEVELS, level_index
from app.core.sanitizers import contains_pattern, sanitize_string
from app.core.utils import average, utc_now_iso
from app.database.supabase_client import ilike_any, select_all
from app.modules.admin.schemas import (
    ActivityData, LessonWriteRequest, VocabularyCreate, VocabularyUpdate
)
from app.modules.admin.service import MAX_PAGE_SIZE
from app.modules.lessons.service import LessonService

logger = logging.getLogger(__name__)

LESSON_SNAPSHOT_FIELDS = ["level", "topic", "lesson_number", "version"]


def lesson_id_for(level: str, lesson_number: int) -> str:
    return f"{level}-L{lesson_number:02d}"


class ContentService:
    """Admin management of lessons, their activities and vocabulary."""

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.lessons = LessonService(supabase)

    # Lessons

    def _student_data(self, lesson_id: str) -> Dict[str, int]:
        results = self.supabase.table("lesson_activity_results")\
            .select("id", count="exact")\
            .eq("lesson_id", lesson_id)\
            .execute()
        progress = self.supabase.table("user_progress")\
            .select("id", count="exact")\
            .eq("lesson_id", lesson_id)\
            .execute()
        return {
            "activityResults": results.count or 0,
            "progress": progress.count or 0,
        }

    def _results_at_order(self, lesson_id: str, activity_order: int) -> int:
        result = self.supabase.table("lesson_activity_results")\
            .select("id", count="exact")\
            .eq("lesson_id", lesson_id)\
            .eq("activity_order", activity_order)\
            .execute()
        return result.count or 0

    def list_lessons(self) -> List[Dict[str, Any]]:
        try:
            lessons = select_all(lambda: self.supabase.table("lessons")
                                 .select("id, level, topic, lesson_number, version, created_at, updated_at")
                                 .order("id"))
            activities = select_all(lambda: self.supabase.table("lesson_activities")
                                    .select("lesson_id")
                                    .eq("active", True)
                                    .order("id"))
            completions = select_all(lambda: self.supabase.table("user_progress")
                                     .select("lesson_id, user_id, score")
                                     .eq("completed", True)
                                     .order("id"))
        except Exception as e:
            logger.error(f"Failed to list lessons: {e}")
            raise HTTPException(status_code=500, detail="Failed to load lessons")

        activity_counts = defaultdict(int)
        for row in activities:
            activity_counts[row["lesson_id"]] += 1
        completed_users = defaultdict(set)
        scores = defaultdict(list)
        for row in completions:
            completed_users[row["lesson_id"]].add(row["user_id"])
            scores[row["lesson_id"]].append(row.get("score") or 0)

        for lesson in lessons:
            lesson["activity_count"] = activity_counts.get(lesson["id"], 0)
            lesson["completion_count"] = len(completed_users.get(lesson["id"], ()))
            lesson["average_score"] = average(scores[lesson["id"]]) if lesson["id"] in scores else None
        lessons.sort(key=lambda lesson: (level_index(lesson.get("level")), lesson.get("lesson_number") or 0))
        return lessons

    def get_lesson(self, lesson_id: str, check_student_data: bool = False) -> Dict[str, Any]:
        try:
            lesson = self.lessons.get_lesson_row(lesson_id)
            if not lesson:
                raise HTTPException(status_code=404, detail="Lesson not found")
            lesson["activities"] = self.lessons.load_activities([lesson_id])
            response = {"lesson": lesson}
            if check_student_data:
                response["studentData"] = self._student_data(lesson_id)
            return response
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to load lesson {lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load lesson")

    def _activity_record(self, lesson_id: str, activity: ActivityData) -> Dict[str, Any]:
        content = activity.content or {}
        return {
            "lesson_id": lesson_id,
            "activity_type": activity.activity_type,
            "activity_order": activity.activity_order,
            "title": activity.title or content.get("title"),
            "description": activity.description or content.get("description"),
            "estimated_time_seconds": activity.estimated_time_seconds or content.get("estimated_time_seconds"),
            "content": content,
            "active": True,
        }

    def _insert_vocabulary(self, activity_id: str, activity: ActivityData) -> None:
        rows = [
            {
                "activity_id": activity_id,
                "english_word": item.english_word,
                "thai_translation": item.thai_translation,
                "audio_url": item.audio_url,
                "image_url": item.image_url,
            }
            for item in activity.vocabulary_items
            if item.english_word and item.thai_translation
        ]
        if rows:
            self.supabase.table("vocabulary_items").insert(rows).execute()

    def _insert_sentences(self, activity_id: str, activity: ActivityData, skip: Optional[set] = None) -> None:
        rows = [
            {
                "activity_id": activity_id,
                "original_sentence": sentence.original_sentence,
                "correct_sentence": sentence.correct_sentence,
                "words_array": sentence.words_array,
            }
            for sentence in activity.grammar_sentences
            if sentence.original_sentence and sentence.correct_sentence and sentence.words_array
            and sentence.correct_sentence not in (skip or set())
        ]
        if rows:
            self.supabase.table("grammar_sentences").insert(rows).execute()

    def _insert_activity(self, lesson_id: str, activity: ActivityData) -> str:
        result = self.supabase.table("lesson_activities")\
            .insert(self._activity_record(lesson_id, activity))\
            .execute()
        activity_id = result.data[0]["id"]
        self._insert_vocabulary(activity_id, activity)
        self._insert_sentences(activity_id, activity)
        return activity_id

    def _delete_activities(self, activity_ids: List[str]) -> None:
        if not activity_ids:
            return
        self.supabase.table("vocabulary_items").delete().in_("activity_id", activity_ids).execute()
        self.supabase.table("grammar_sentences").delete().in_("activity_id", activity_ids).execute()
        self.supabase.table("lesson_activities").delete().in_("id", activity_ids).execute()

    def create_lesson(self, payload: LessonWriteRequest, admin_id: Optional[str]) -> Dict[str, Any]:
        lesson = payload.lesson
        if not lesson or not lesson.level or not lesson.lesson_number or not lesson.topic:
            raise HTTPException(status_code=400, detail="Lesson level, lesson number, and topic are required")
        if lesson.level not in CEFR_LEVELS:
            raise HTTPException(status_code=400, detail="Invalid level")
        if not payload.activities:
            raise HTTPException(status_code=400, detail="At least one activity is required")

        lesson_id = sanitize_string(lesson.id, 50) or lesson_id_for(lesson.level, lesson.lesson_number)
        if self.lessons.get_lesson_row(lesson_id):
            raise HTTPException(status_code=409, detail="Lesson already exists")

        now = utc_now_iso()
        try:
            created = self.supabase.table("lessons").insert({
                "id": lesson_id,
                "level": lesson.level,
                "lesson_number": lesson.lesson_number,
                "topic": sanitize_string(lesson.topic, 200),
                "version": 1,
                "last_modified_by": admin_id,
                "last_modified_at": now,
            }).execute()
        except Exception as e:
            logger.error(f"Failed to create lesson {lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to create lesson")

        activity_ids = []
        try:
            for activity in payload.activities:
                activity_ids.append(self._insert_activity(lesson_id, activity))
        except Exception as e:
            logger.error(f"Failed to create activities for lesson {lesson_id}, removing lesson: {e}")
            try:
                # Includes an activity whose children failed to insert
                inserted = self.supabase.table("lesson_activities")\
                    .select("id")\
                    .eq("lesson_id", lesson_id)\
                    .execute()
                self._delete_activities([row["id"] for row in inserted.data or []])
                self.supabase.table("lessons").delete().eq("id", lesson_id).execute()
            except Exception as cleanup_error:
                logger.error(f"Failed to remove partially created lesson {lesson_id}: {cleanup_error}")
            raise HTTPException(status_code=500, detail="Failed to create lesson")

        logger.info(f"Lesson {lesson_id} created with {len(activity_ids)} activities")
        return created.data[0] if created.data else {"id": lesson_id}

    def update_lesson(self, lesson_id: str, payload: LessonWriteRequest, admin_id: Optional[str]) -> Dict[str, Any]:
        current = self.lessons.get_lesson_row(lesson_id)
        if not current:
            raise HTTPException(status_code=404, detail="Lesson not found")
        lesson = payload.lesson
        level = (lesson.level if lesson else None) or current.get("level")
        if level not in CEFR_LEVELS:
            raise HTTPException(status_code=400, detail="Invalid level")

        try:
            student_data = self._student_data(lesson_id)
            has_student_data = student_data["activityResults"] > 0 or student_data["progress"] > 0
            existing = self.lessons.load_activities([lesson_id])
            current_version = current.get("version") or 1
            new_version = current_version + 1
            now = utc_now_iso()

            update = {
                "level": level,
                "lesson_number": (lesson.lesson_number if lesson else None) or current.get("lesson_number"),
                "topic": sanitize_string((lesson.topic if lesson else None) or current.get("topic"), 200),
                "version": new_version,
                "last_modified_by": admin_id,
                "last_modified_at": now,
                "updated_at": now,
            }
            updated = self.supabase.table("lessons").update(update).eq("id", lesson_id).execute()

            self.supabase.table("lesson_history").insert({
                "lesson_id": lesson_id,
                "version": new_version,
                "changed_by": admin_id,
                "changes": {
                    "before": {
                        **{field: current.get(field) for field in LESSON_SNAPSHOT_FIELDS},
                        "version": current_version,
                        "activities": existing,
                    },
                    "after": {
                        **{field: update[field] for field in LESSON_SNAPSHOT_FIELDS},
                        "activities": [a.model_dump() for a in payload.activities or []],
                    },
                    "activities_changed": "upsert" if has_student_data else "replaced",
                    "student_data": student_data,
                    "timestamp": now,
                },
            }).execute()

            if payload.activities is not None:
                if has_student_data:
                    self._merge_activities(lesson_id, existing, payload.activities)
                else:
                    self._delete_activities([a["id"] for a in existing])
                    for activity in payload.activities:
                        self._insert_activity(lesson_id, activity)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to update lesson {lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update lesson")

        logger.info(f"Lesson {lesson_id} updated to version {new_version} (student data: {has_student_data})")
        return updated.data[0] if updated.data else {**current, **update}

    def _merge_activities(self, lesson_id: str, existing: List[Dict[str, Any]], activities: List[ActivityData]) -> None:
        """Update activities in place by order so stored results keep pointing at them."""
        existing_by_order = {a["activity_order"]: a for a in existing}
        for activity in activities:
            current = existing_by_order.get(activity.activity_order)
            if current:
                record = self._activity_record(lesson_id, activity)
                record["updated_at"] = utc_now_iso()
                self.supabase.table("lesson_activities").update(record).eq("id", current["id"]).execute()
                activity_id = current["id"]
                self.supabase.table("vocabulary_items").delete().eq("activity_id", activity_id).execute()
                self._insert_vocabulary(activity_id, activity)
                if self._results_at_order(lesson_id, activity.activity_order) == 0:
                    self.supabase.table("grammar_sentences").delete().eq("activity_id", activity_id).execute()
                    self._insert_sentences(activity_id, activity)
                else:
                    kept = {s.get("correct_sentence") for s in current.get("grammar_sentences") or []}
                    self._insert_sentences(activity_id, activity, skip=kept)
            else:
                self._insert_activity(lesson_id, activity)

        new_orders = {activity.activity_order for activity in activities}
        for current in existing:
            if current["activity_order"] in new_orders:
                continue
            # Activities with stored results stay active
            if self._results_at_order(lesson_id, current["activity_order"]) == 0:
                self.supabase.table("lesson_activities")\
                    .update({"active": False, "updated_at": utc_now_iso()})\
                    .eq("id", current["id"])\
                    .execute()

    def delete_lesson(self, lesson_id: str) -> None:
        if not self.lessons.get_lesson_row(lesson_id):
            raise HTTPException(status_code=404, detail="Lesson not found")
        try:
            activities = self.supabase.table("lesson_activities")\
                .select("id", count="exact")\
                .eq("lesson_id", lesson_id)\
                .execute()
            progress = self.supabase.table("user_progress")\
                .select("id", count="exact")\
                .eq("lesson_id", lesson_id)\
                .execute()
            if (activities.count or 0) > 0 or (progress.count or 0) > 0:
                raise HTTPException(
                    status_code=400,
                    detail="Cannot delete lesson with existing activities or user progress",
                )
            self.supabase.table("lessons").delete().eq("id", lesson_id).execute()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to delete lesson {lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete lesson")
        logger.info(f"Lesson {lesson_id} deleted")

    # Vocabulary

    def _with_activity_context(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach activity_type, lesson_topic and level of the owning activity."""
        activity_ids = list({item["activity_id"] for item in items if item.get("activity_id")})
        activities = {}
        lessons = {}
        if activity_ids:
            rows = self.supabase.table("lesson_activities")\
                .select("id, lesson_id, activity_type")\
                .in_("id", activity_ids)\
                .execute().data or []
            activities = {row["id"]: row for row in rows}
            lesson_ids = list({row["lesson_id"] for row in rows})
            if lesson_ids:
                lesson_rows = self.supabase.table("lessons")\
                    .select("id, topic, level")\
                    .in_("id", lesson_ids)\
                    .execute().data or []
                lessons = {row["id"]: row for row in lesson_rows}
        for item in items:
            activity = activities.get(item.get("activity_id")) or {}
            lesson = lessons.get(activity.get("lesson_id")) or {}
            item["activity_type"] = activity.get("activity_type")
            item["lesson_topic"] = lesson.get("topic")
            item["level"] = lesson.get("level")
        return items

    def _get_vocabulary_row(self, vocabulary_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("vocabulary_items")\
            .select("*")\
            .eq("id", vocabulary_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def list_vocabulary(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        activity_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        offset = (page - 1) * limit
        try:
            query = self.supabase.table("vocabulary_items").select("*", count="exact")
            if activity_id:
                query = query.eq("activity_id", activity_id)
            pattern = contains_pattern(search)
            if pattern:
                query = query.or_(ilike_any(["english_word", "thai_translation"], pattern))
            result = query.order("english_word")\
                .order("id")\
                .limit(limit)\
                .offset(offset)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to list vocabulary: {e}")
            raise HTTPException(status_code=500, detail="Failed to load vocabulary")

        total = result.count or 0
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "vocabulary": self._with_activity_context(result.data or []),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": total_pages,
                "hasNext": page < total_pages,
                "hasPrev": page > 1,
            },
        }

    def get_vocabulary(self, vocabulary_id: str) -> Dict[str, Any]:
        item = self._get_vocabulary_row(vocabulary_id)
        if not item:
            raise HTTPException(status_code=404, detail="Vocabulary item not found")
        return self._with_activity_context([item])[0]

    def create_vocabulary(self, data: VocabularyCreate) -> Dict[str, Any]:
        if not data.activity_id or not data.english_word or not data.thai_translation:
            raise HTTPException(
                status_code=400,
                detail="Activity ID, English word, and Thai translation are required",
            )
        activity = self.supabase.table("lesson_activities")\
            .select("id")\
            .eq("id", data.activity_id)\
            .limit(1)\
            .execute()
        if not activity.data:
            raise HTTPException(status_code=404, detail="Activity not found")
        try:
            result = self.supabase.table("vocabulary_items").insert({
                "activity_id": data.activity_id,
                "english_word": sanitize_string(data.english_word, 200),
                "thai_translation": sanitize_string(data.thai_translation, 200),
                "audio_url": data.audio_url,
                "image_url": data.image_url,
            }).execute()
            return result.data[0]
        except Exception as e:
            logger.error(f"Failed to create vocabulary item: {e}")
            raise HTTPException(status_code=500, detail="Failed to create vocabulary item")

    def update_vocabulary(self, vocabulary_id: str, data: VocabularyUpdate) -> Dict[str, Any]:
        update = data.model_dump(exclude_unset=True)
        for field in ("english_word", "thai_translation"):
            if field in update:
                update[field] = sanitize_string(update[field], 200)
                if not update[field]:
                    raise HTTPException(status_code=400, detail=f"{field} cannot be empty")
        if not update:
            raise HTTPException(status_code=400, detail="No fields to update")
        if not self._get_vocabulary_row(vocabulary_id):
            raise HTTPException(status_code=404, detail="Vocabulary item not found")
        try:
            update["updated_at"] = utc_now_iso()
            result = self.supabase.table("vocabulary_items")\
                .update(update)\
                .eq("id", vocabulary_id)\
                .execute()
            return result.data[0]
        except Exception as e:
            logger.error(f"Failed to update vocabulary item {vocabulary_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update vocabulary item")

    def delete_vocabulary(self, vocabulary_id: str) -> None:
        if not self._get_vocabulary_row(vocabulary_id):
            raise HTTPException(status_code=404, detail="Vocabulary item not found")
        try:
            self.supabase.table("vocabulary_items").delete().eq("id", vocabulary_id).execute()
        except Exception as e:
            logger.error(f"Failed to delete vocabulary item {vocabulary_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete vocabulary item")
