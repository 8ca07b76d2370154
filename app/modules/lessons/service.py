import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.learning_config import activity_group
from app.core.utils import parse_timestamp, percentage, utc_now

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 70
DEFAULT_SPEAKING_PROMPT = {"id": "prompt-0", "text": "Introduce yourself."}
DEFAULT_FEEDBACK_CRITERIA = {"grammar": True, "vocabulary": True, "pronunciation": True}


def progress_percentage(total_activities: int, completed_activities: int, completed: bool = False) -> int:
    """Share of active activities the user has results for, capped at 100."""
    if total_activities > 0:
        return min(100, percentage(completed_activities, total_activities))
    return 100 if completed else 0


def _epoch_ms(value: Any) -> int:
    parsed = parse_timestamp(value) or utc_now()
    return int(parsed.timestamp() * 1000)


def serialize_activity_result(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "activityType": row.get("activity_type"),
        "activityOrder": row.get("activity_order"),
        "score": row.get("score") or 0,
        "maxScore": row.get("max_score") or 0,
        "attempts": row.get("attempts") or 1,
        "timeSpent": row.get("time_spent") or 0,
        "completed": True,
        "completedAt": _epoch_ms(row.get("completed_at")),
        "answers": row.get("answers"),
        "feedback": row.get("feedback"),
    }


def _normalize_prompts(content: Dict[str, Any]) -> List[Dict[str, str]]:
    prompts = content.get("prompts")
    if isinstance(prompts, list):
        normalized = []
        for index, prompt in enumerate(prompts):
            if isinstance(prompt, str):
                normalized.append({"id": f"prompt-{index}", "text": prompt})
            elif isinstance(prompt, dict) and prompt.get("id") and prompt.get("text"):
                normalized.append({"id": prompt["id"], "text": prompt["text"]})
            elif isinstance(prompt, dict) and prompt.get("prompt"):
                normalized.append({"id": prompt.get("id") or f"prompt-{index}", "text": prompt["prompt"]})
            else:
                normalized.append({"id": f"prompt-{index}", "text": str(prompt)})
        return normalized
    prompt = content.get("prompt")
    if prompt:
        if isinstance(prompt, dict):
            text = prompt.get("text") or prompt.get("prompt") or str(prompt)
        else:
            text = str(prompt)
        return [{"id": "prompt-0", "text": text}]
    return [dict(DEFAULT_SPEAKING_PROMPT)]


def _fill_blank_exercise(activity: Dict[str, Any], content: Dict[str, Any]) -> Dict[str, Any]:
    blanks = content.get("blanks")
    if isinstance(blanks, list) and blanks:
        normalized = []
        for index, blank in enumerate(blanks):
            if isinstance(blank, str):
                # A bare string is the answer itself
                blank = {"options": [blank], "correctAnswer": blank}
            elif not isinstance(blank, dict):
                logger.warning(f"Skipping malformed blank in activity {activity.get('id')}: {blank!r}")
                continue
            options = blank.get("options") or []
            correct = blank.get("correctAnswer")
            if correct is None:
                correct = options[0] if options else ""
            normalized.append({
                "id": blank.get("id") or f"blank-{index}",
                "text": blank.get("text") or "",
                "options": options,
                "correctAnswer": correct,
            })
        return {
            "activityOrder": activity.get("activity_order"),
            "text": content.get("text") or content.get("sentence") or "",
            "blanks": normalized,
        }
    return {
        "activityOrder": activity.get("activity_order"),
        "sentence": content.get("sentence") or content.get("text") or "",
        "options": content.get("options") or [],
        "correct": content.get("correct") or 0,
    }


def build_lesson_steps(activities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Fold ordered activities into the step structure the lesson player renders."""
    steps: Dict[str, Any] = {
        "warmup": {"prompt": "", "aiFeedbackEnabled": True},
        "vocabulary": {"words": [], "exercises": {"matching": [], "fillBlanks": []}},
        "grammar": {"explanation": "", "examples": [], "sentences": []},
        "speaking": {"prompts": [], "feedbackCriteria": dict(DEFAULT_FEEDBACK_CRITERIA)},
        "improvement": {
            "type": "speaking_improvement",
            "prompt": "",
            "improvedText": "",
            "targetText": "",
            "similarityThreshold": DEFAULT_SIMILARITY_THRESHOLD,
            "audioUrl": "",
        },
    }
    for activity in activities:
        content = activity.get("content") or {}
        group = activity_group(activity.get("activity_type"))
        vocabulary_items = activity.get("vocabulary_items") or []

        if group == "warm_up":
            enabled = content.get("ai_feedback_enabled")
            steps["warmup"] = {
                "prompt": content.get("prompt") or "",
                "aiFeedbackEnabled": True if enabled is None else bool(enabled),
            }
        elif group == "vocabulary_intro":
            steps["vocabulary"]["words"] = [
                {"en": item.get("english_word"), "th": item.get("thai_translation"), "audioUrl": item.get("audio_url")}
                for item in vocabulary_items
            ]
        elif group == "vocabulary_matching":
            if vocabulary_items:
                steps["vocabulary"]["exercises"]["matching"].append([
                    {"word": item.get("english_word"), "meaning": item.get("thai_translation")}
                    for item in vocabulary_items
                ])
        elif group == "vocabulary_fill_blanks":
            steps["vocabulary"]["exercises"]["fillBlanks"].append(_fill_blank_exercise(activity, content))
        elif group == "grammar_explanation":
            if content.get("rules") or content.get("explanation"):
                steps["grammar"]["explanation"] = content.get("rules") or content.get("explanation") or ""
                steps["grammar"]["examples"] = content.get("examples") or []
        elif group == "grammar_sentences":
            steps["grammar"]["sentences"].extend(
                {"id": sentence.get("id"), "words": sentence.get("words_array") or [], "correct": sentence.get("correct_sentence")}
                for sentence in activity.get("grammar_sentences") or []
            )
        elif group == "speaking":
            steps["speaking"]["prompts"] = _normalize_prompts(content)
            steps["speaking"]["feedbackCriteria"] = content.get("feedback_criteria") or dict(DEFAULT_FEEDBACK_CRITERIA)
        elif group == "speaking_improvement":
            improved = content.get("improvedText") or content.get("improved_text") or ""
            steps["improvement"].update({
                "type": "speaking_improvement",
                "prompt": content.get("prompt") or "",
                "improvedText": improved,
                "targetText": improved,
                "similarityThreshold": content.get("similarity_threshold") or DEFAULT_SIMILARITY_THRESHOLD,
            })
        elif group == "reading":
            steps["improvement"]["targetText"] = content.get("target_text") or content.get("transcript") or ""
            steps["improvement"]["similarityThreshold"] = (
                content.get("similarity_threshold") or DEFAULT_SIMILARITY_THRESHOLD
            )
            if content.get("audio_url"):
                steps["improvement"]["audioUrl"] = content["audio_url"]
        else:
            logger.debug(f"Activity type {activity.get('activity_type')} has no lesson step")
    return steps


class LessonService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_lesson_row(self, lesson_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("lessons")\
            .select("*")\
            .eq("id", lesson_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def load_activities(self, lesson_ids: List[str], active_only: bool = True) -> List[Dict[str, Any]]:
        """Activities of the given lessons ordered by activity_order, with their vocabulary and grammar items."""
        if not lesson_ids:
            return []
        query = self.supabase.table("lesson_activities")\
            .select("*")\
            .in_("lesson_id", lesson_ids)
        if active_only:
            query = query.eq("active", True)
        activities = query.order("activity_order").execute().data or []
        activity_ids = [a["id"] for a in activities]
        vocabulary = defaultdict(list)
        sentences = defaultdict(list)
        if activity_ids:
            vocab_rows = self.supabase.table("vocabulary_items")\
                .select("*")\
                .in_("activity_id", activity_ids)\
                .order("created_at")\
                .execute()
            for row in vocab_rows.data or []:
                vocabulary[row["activity_id"]].append(row)
            sentence_rows = self.supabase.table("grammar_sentences")\
                .select("*")\
                .in_("activity_id", activity_ids)\
                .order("created_at")\
                .execute()
            for row in sentence_rows.data or []:
                sentences[row["activity_id"]].append(row)
        for activity in activities:
            activity["vocabulary_items"] = vocabulary.get(activity["id"], [])
            activity["grammar_sentences"] = sentences.get(activity["id"], [])
        return activities

    def count_active_activities(self, lesson_ids: List[str]) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        if not lesson_ids:
            return counts
        result = self.supabase.table("lesson_activities")\
            .select("id, lesson_id")\
            .in_("lesson_id", lesson_ids)\
            .eq("active", True)\
            .execute()
        for row in result.data or []:
            counts[row["lesson_id"]] += 1
        return counts

    def count_completed_activities(self, user_id: str, lesson_ids: List[str]) -> Dict[str, int]:
        """Distinct activity orders the user has results for, per lesson."""
        orders: Dict[str, set] = defaultdict(set)
        if not lesson_ids:
            return {}
        result = self.supabase.table("lesson_activity_results")\
            .select("lesson_id, activity_order")\
            .eq("user_id", user_id)\
            .in_("lesson_id", lesson_ids)\
            .execute()
        for row in result.data or []:
            orders[row["lesson_id"]].add(row.get("activity_order"))
        return {lesson_id: len(values) for lesson_id, values in orders.items()}

    def get_progress_rows(self, user_id: str, lesson_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        if not lesson_ids:
            return {}
        result = self.supabase.table("user_progress")\
            .select("*")\
            .eq("user_id", user_id)\
            .in_("lesson_id", lesson_ids)\
            .execute()
        return {row["lesson_id"]: row for row in result.data or []}

    def _user_progress(self, row: Optional[Dict[str, Any]], total: int, completed: int) -> Optional[Dict[str, Any]]:
        if not row:
            return None
        return {
            "id": row.get("id"),
            "user_id": row.get("user_id"),
            "lesson_id": row.get("lesson_id"),
            "score": progress_percentage(total, completed, bool(row.get("completed"))),
            "completed": bool(row.get("completed")),
            "completed_at": row.get("completed_at"),
            "attempts": row.get("attempts") or 0,
        }

    def list_by_level(self, user_id: str, level: Optional[str]) -> Dict[str, Any]:
        if not level:
            raise HTTPException(status_code=400, detail="Level is required")
        try:
            lessons = self.supabase.table("lessons")\
                .select("*")\
                .eq("level", level)\
                .order("lesson_number")\
                .execute().data or []
            lesson_ids = [lesson["id"] for lesson in lessons]
            totals = self.count_active_activities(lesson_ids)
            completed = self.count_completed_activities(user_id, lesson_ids)
            progress = self.get_progress_rows(user_id, lesson_ids)
            formatted = []
            for lesson in lessons:
                formatted.append({
                    **lesson,
                    "userProgress": self._user_progress(
                        progress.get(lesson["id"]), totals.get(lesson["id"], 0), completed.get(lesson["id"], 0)
                    ),
                })
            return {"level": level, "lessons": formatted, "totalLessons": len(formatted)}
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to load lessons for level {level}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load lessons")

    def get_lesson(self, user_id: str, lesson_id: str) -> Dict[str, Any]:
        try:
            lesson = self.get_lesson_row(lesson_id)
            if not lesson:
                raise HTTPException(status_code=404, detail="Lesson not found")
            activities = self.load_activities([lesson_id])

            user_progress = None
            activity_results = None
            progress = self.get_progress_rows(user_id, [lesson_id]).get(lesson_id)
            if progress:
                completed = self.count_completed_activities(user_id, [lesson_id]).get(lesson_id, 0)
                user_progress = self._user_progress(progress, len(activities), completed)
                results = self.supabase.table("lesson_activity_results")\
                    .select("*")\
                    .eq("user_id", user_id)\
                    .eq("lesson_id", lesson_id)\
                    .order("activity_order")\
                    .execute()
                activity_results = [serialize_activity_result(row) for row in results.data or []]

            return {
                "lesson": {
                    "id": lesson["id"],
                    "level": lesson.get("level"),
                    "topic": lesson.get("topic"),
                    "lesson_number": lesson.get("lesson_number"),
                    "created_at": lesson.get("created_at"),
                    "updated_at": lesson.get("updated_at"),
                    "steps": build_lesson_steps(activities),
                },
                "userProgress": user_progress,
                "activityResults": activity_results,
                "activities": activities,
            }
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to load lesson {lesson_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load lesson")
