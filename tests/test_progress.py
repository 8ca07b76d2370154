"""Tests for activity submission, lesson finalization, the dashboard and level advancement."""

from datetime import date, timedelta

from app.config.learning_config import MAX_STREAK_DAYS
from app.core.utils import utc_now, utc_now_iso
from app.modules.progress.service import title_progress
from app.modules.progress.streaks import completion_dates, current_streak, start_of_week, weekly_progress

from tests.conftest import auth_headers


class TestTitleProgress:
    """Tests for title_progress."""

    def test_first_title(self):
        assert title_progress("A1", 0) == {
            "currentTitle": "Tiny Whisker",
            "nextTitle": "Soft Paw",
            "nextTitleLessonsNeeded": 5,
        }

    def test_title_every_five_lessons(self):
        result = title_progress("A1", 12)
        assert result["currentTitle"] == "Curious Kitten"
        assert result["nextTitleLessonsNeeded"] == 3

    def test_last_title_points_to_next_level(self):
        result = title_progress("A1", 47)
        assert result["currentTitle"] == "Glow Whisker"
        assert result["nextTitle"] == "Sunny Purr"
        assert result["nextTitleLessonsNeeded"] is None

    def test_max_title(self):
        result = title_progress("C2", 60)
        assert result["currentTitle"] == "TutorCat"
        assert result["nextTitle"] == "Max Level Reached"


class TestStreaks:
    """Tests for streak and weekly goal arithmetic."""

    def test_streak_counts_back_from_today(self):
        today = date(2026, 10, 19)
        dates = {today, today - timedelta(days=1), today - timedelta(days=2), today - timedelta(days=4)}
        assert current_streak(dates, today) == 3

    def test_streak_continues_from_yesterday(self):
        today = date(2026, 10, 19)
        dates = {today - timedelta(days=1), today - timedelta(days=2)}
        assert current_streak(dates, today) == 2

    def test_streak_broken(self):
        today = date(2026, 10, 19)
        assert current_streak({today - timedelta(days=2)}, today) == 0
        assert current_streak(set(), today) == 0

    def test_streak_is_capped(self):
        today = date(2026, 10, 19)
        dates = {today - timedelta(days=n) for n in range(45)}
        assert current_streak(dates, today) == MAX_STREAK_DAYS

    def test_week_starts_on_sunday(self):
        assert start_of_week(date(2026, 10, 19)) == date(2026, 10, 18)
        assert start_of_week(date(2026, 10, 18)) == date(2026, 10, 18)

    def test_weekly_progress_counts_days_this_week(self):
        today = date(2026, 10, 19)
        dates = {date(2026, 10, 17), date(2026, 10, 18), today}
        assert weekly_progress(dates, today) == 2

    def test_completion_dates_skip_incomplete(self):
        rows = [
            {"completed": True, "completed_at": "2026-10-18T23:30:00+00:00"},
            {"completed": False, "completed_at": "2026-10-17T10:00:00+00:00"},
            {"completed": True, "completed_at": None},
        ]
        assert completion_dates(rows) == {date(2026, 10, 18)}


class TestSubmitActivity:
    """Tests for POST /api/v1/progress/activities."""

    def test_first_result_creates_progress(self, client, user, user_headers, db, seed_lesson):
        lesson, activities = seed_lesson(activity_types=("warm_up_speaking", "language_improvement_reading"))
        response = client.post("/api/v1/progress/activities", headers=user_headers, json={
            "lessonId": lesson["id"], "activityType": "warm_up_speaking", "activityOrder": 1,
            "score": 4, "maxScore": 5, "timeSpent": 40, "answers": {"text": "Hello there"},
        })
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Lesson activity submitted successfully"}
        result = db.rows("lesson_activity_results")[0]
        assert result["activity_id"] == activities[0]["id"]
        assert result["score"] == 4
        assert result["answers"] == {"text": "Hello there"}
        progress = db.rows("user_progress")[0]
        assert progress["completed"] is False
        assert progress["score"] == 4

    def test_resubmission_replaces_result(self, client, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        body = {"lessonId": lesson["id"], "activityType": "warm_up_speaking", "activityOrder": 1, "score": 2, "maxScore": 5}
        client.post("/api/v1/progress/activities", headers=user_headers, json=body)
        client.post("/api/v1/progress/activities", headers=user_headers, json={**body, "score": 5, "attempts": 2})
        results = db.rows("lesson_activity_results")
        assert len(results) == 1
        assert results[0]["score"] == 5
        assert db.rows("user_progress")[0]["attempts"] == 2

    def test_result_without_activity_row(self, client, user_headers, db, seed_lesson):
        """An order with no activity is matched on the order instead."""
        lesson, _ = seed_lesson()
        body = {"lessonId": lesson["id"], "activityType": "speaking_practice", "activityOrder": 7, "score": 1}
        client.post("/api/v1/progress/activities", headers=user_headers, json=body)
        client.post("/api/v1/progress/activities", headers=user_headers, json={**body, "score": 3})
        results = db.rows("lesson_activity_results")
        assert len(results) == 1
        assert results[0]["activity_id"] is None
        assert results[0]["score"] == 3

    def test_final_activity_completes_lesson(self, client, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson(activity_types=("warm_up_speaking", "language_improvement_reading"))
        client.post("/api/v1/progress/activities", headers=user_headers, json={
            "lessonId": lesson["id"], "activityType": "warm_up_speaking", "activityOrder": 1, "score": 1,
        })
        client.post("/api/v1/progress/activities", headers=user_headers, json={
            "lessonId": lesson["id"], "activityType": "language_improvement_reading", "activityOrder": 2, "score": 2,
        })
        progress = db.rows("user_progress")[0]
        assert progress["completed"] is True
        assert progress["completed_at"]
        assert progress["score"] == 3

    def test_missing_fields(self, client, user_headers):
        response = client.post("/api/v1/progress/activities", headers=user_headers, json={"score": 1})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: lessonId, activityType, activityOrder"

    def test_malformed_body(self, client, user_headers):
        response = client.post("/api/v1/progress/activities", headers=user_headers, json={
            "lessonId": "A1-L01", "activityType": "warm_up_speaking", "activityOrder": "first",
        })
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "activityOrder" in response.json()["error"]


class TestFinalizeLesson:
    """Tests for POST /api/v1/progress/finalize."""

    def _seed_results(self, db, user, lesson_id, scores):
        for order, (score, max_score) in enumerate(scores, start=1):
            db.add("lesson_activity_results", user_id=user["id"], lesson_id=lesson_id, activity_order=order,
                   score=score, max_score=max_score)

    def test_passing_lesson_awards_stars_and_achievements(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(9, 10), (9, 10)])
        first_steps = db.add("achievements", code="first_lesson", name="First Steps", icon="🐾", category="lessons",
                             points=10, requirement_type="lessons_completed", requirement_value=1)
        db.add("achievements", code="lessons_5", name="Curious Learner", icon="📘", category="lessons",
               points=20, requirement_type="lessons_completed", requirement_value=5)

        response = client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalScore"] == 18
        assert data["maxScore"] == 20
        assert data["percentage"] == 90
        assert data["passed"] is True
        assert data["starsEarned"] == 3
        assert data["completedActivities"] == 2
        assert data["newlyEarnedAchievements"] == [{"code": "first_lesson", "name": "First Steps", "icon": "🐾"}]
        assert db.rows("users")[0]["total_stars"] == 3
        assert db.rows("user_progress")[0]["completed"] is True
        assert [row["achievement_id"] for row in db.rows("user_achievements")] == [first_steps["id"]]

    def test_star_thresholds(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(7, 10)])
        data = client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]}).json()["data"]
        assert data["percentage"] == 70
        assert data["starsEarned"] == 1

    def test_failing_lesson_is_still_completed(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(1, 10)])
        data = client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]}).json()["data"]
        assert data["passed"] is False
        assert data["starsEarned"] == 0
        assert db.rows("users")[0]["total_stars"] == 0
        assert db.rows("user_progress")[0]["completed"] is True

    def test_refinalize_counts_attempts(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(10, 10)])
        client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]})
        client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]})
        assert len(db.rows("user_progress")) == 1
        assert db.rows("user_progress")[0]["attempts"] == 2

    def test_stars_are_added_in_one_database_call(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(10, 10)])
        db.rows("users")[0]["total_stars"] = 5
        db.calls.clear()
        client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]})
        assert db.rows("users")[0]["total_stars"] == 8
        assert db.calls.count(("rpc", "increment_total_stars")) == 1
        assert ("users", "update") not in db.calls

    def test_star_increment_failure(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(10, 10)])
        db.fail_actions.add(("rpc", "increment_total_stars"))
        response = client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]})
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to finalize lesson"

    def test_achievement_failure_does_not_fail_finalize(self, client, user, user_headers, db, seed_lesson):
        lesson, _ = seed_lesson()
        self._seed_results(db, user, lesson["id"], [(10, 10)])
        db.fail_tables.add("achievements")
        response = client.post("/api/v1/progress/finalize", headers=user_headers, json={"lessonId": lesson["id"]})
        assert response.status_code == 200
        assert response.json()["data"]["newlyEarnedAchievements"] == []

    def test_lesson_id_required(self, client, user_headers):
        response = client.post("/api/v1/progress/finalize", headers=user_headers, json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Lesson ID is required"


class TestDashboard:
    """Tests for GET /api/v1/progress/dashboard."""

    def test_unassessed_user(self, client, user_headers, seed_lesson):
        seed_lesson()
        response = client.get("/api/v1/progress/dashboard", headers=user_headers)
        assert response.status_code == 200
        progress = response.json()["data"]["progress"]
        assert progress["currentLevel"] == "Not Assessed"
        assert progress["currentTitle"] == "Take Evaluation"
        assert progress["nextTitle"] == "Complete Assessment"
        assert progress["levelProgress"] == 0

    def test_progress_titles_and_streak(self, client, make_user, db, seed_lesson):
        learner = make_user("bob", level="A1")
        for number in range(1, 8):
            lesson, _ = seed_lesson(number=number, topic=f"Topic {number}")
            if number <= 6:
                db.add("user_progress", user_id=learner["id"], lesson_id=lesson["id"], score=10, completed=True,
                       completed_at=(utc_now() - timedelta(minutes=number)).isoformat(), attempts=1)
        seed_lesson(level="A2", number=1)
        achievement = db.add("achievements", code="first_lesson", name="First Steps", icon="🐾")
        db.add("user_achievements", user_id=learner["id"], achievement_id=achievement["id"], earned_at=utc_now_iso())

        response = client.get("/api/v1/progress/dashboard", headers=auth_headers(learner))
        data = response.json()["data"]
        progress = data["progress"]
        assert progress["currentLevel"] == "A1"
        assert progress["levelCompleted"] == 6
        assert progress["levelTotal"] == 7
        assert progress["levelProgress"] == 86
        assert progress["overallCompletionPercentage"] == 75
        assert progress["currentTitle"] == "Soft Paw"
        assert progress["nextTitle"] == "Curious Kitten"
        assert progress["nextTitleLessonsNeeded"] == 4
        assert progress["totalStars"] == 6
        assert len(data["recentLessons"]) == 5
        assert data["recentLessons"][0]["id"] == "A1-L01"
        assert data["currentStreak"] >= 1
        assert data["dailyProgress"] == 1
        assert data["lastEarnedAchievements"][0]["code"] == "first_lesson"


class TestAdvanceLevel:
    """Tests for POST /api/v1/progress/advance-level."""

    def test_advance_when_all_lessons_done(self, client, make_user, db, seed_lesson):
        learner = make_user("bob", level="A1")
        for number in (1, 2):
            lesson, _ = seed_lesson(number=number)
            db.add("user_progress", user_id=learner["id"], lesson_id=lesson["id"], completed=True)
        response = client.post("/api/v1/progress/advance-level", headers=auth_headers(learner))
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "canAdvance": True,
            "fromLevel": "A1",
            "toLevel": "A2",
            "completedLessons": 2,
            "totalLessons": 2,
        }
        assert db.rows("users")[0]["level"] == "A2"

    def test_not_ready(self, client, make_user, db, seed_lesson):
        learner = make_user("bob", level="A1")
        lesson, _ = seed_lesson(number=1)
        seed_lesson(number=2)
        db.add("user_progress", user_id=learner["id"], lesson_id=lesson["id"], completed=True)
        data = client.post("/api/v1/progress/advance-level", headers=auth_headers(learner)).json()
        assert data["canAdvance"] is False
        assert data["toLevel"] is None
        assert db.rows("users")[0]["level"] == "A1"

    def test_no_level(self, client, user_headers):
        response = client.post("/api/v1/progress/advance-level", headers=user_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "User has no level set"
