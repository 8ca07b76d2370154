"""Tests for achievements and the content seed script."""

from datetime import timedelta

from app.config.learning_config import ACHIEVEMENTS, DEFAULT_EVALUATION_TEST_ID
from app.core.utils import utc_now
from app.modules.achievements.service import AchievementService
from app.scripts.seed_content import seed_achievements, seed_evaluation_test


def _catalogue(db):
    return {
        achievement["code"]: db.add("achievements", **achievement)
        for achievement in ACHIEVEMENTS
    }


class TestListAchievements:
    """Tests for GET /api/v1/achievements."""

    def test_unearned_catalogue(self, client, user_headers, db):
        _catalogue(db)
        response = client.get("/api/v1/achievements", headers=user_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["stats"] == {"total": len(ACHIEVEMENTS), "earned": 0, "percentage": 0}
        assert data["lastEarned"] is None
        assert all(a["earned_at"] is None for a in data["achievements"])
        assert set(data["achievementsByCategory"]) == {"lessons", "stars", "streaks", "levels", "evaluation"}

    def test_earned_first_and_progress_capped(self, client, make_user, db, headers_for):
        learner = make_user("bob", level="B1", total_stars=12)
        catalogue = _catalogue(db)
        earlier = (utc_now() - timedelta(days=3)).isoformat()
        later = (utc_now() - timedelta(days=1)).isoformat()
        db.add("user_achievements", user_id=learner["id"], achievement_id=catalogue["stars_10"]["id"], earned_at=earlier)
        db.add("user_achievements", user_id=learner["id"], achievement_id=catalogue["level_a2"]["id"], earned_at=later)

        data = client.get("/api/v1/achievements", headers=headers_for(learner)).json()["data"]
        by_code = {a["code"]: a for a in data["achievements"]}
        assert [a["code"] for a in data["achievements"][:2]] == ["level_a2", "stars_10"]
        assert by_code["stars_10"]["progress"] == 10
        assert by_code["stars_50"]["progress"] == 12
        assert by_code["stars_50"]["target"] == 50
        assert by_code["level_b1"]["progress"] == 3
        assert data["lastEarned"]["code"] == "level_a2"
        assert data["stats"]["earned"] == 2
        assert data["stats"]["percentage"] == 12

    def test_requires_auth(self, client):
        assert client.get("/api/v1/achievements").status_code == 401

    def test_database_failure(self, client, user_headers, db):
        db.fail_tables.add("achievements")
        response = client.get("/api/v1/achievements", headers=user_headers)
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to load achievements"


class TestCheckAndAward:
    """Tests for AchievementService.check_and_award."""

    def test_awards_met_requirements(self, make_user, db):
        learner = make_user("bob", level="A2", total_stars=12)
        _catalogue(db)
        earned = AchievementService(db).check_and_award(learner["id"])
        assert sorted(a["code"] for a in earned) == ["level_a2", "stars_10"]
        assert len(db.rows("user_achievements")) == 2
        assert AchievementService(db).check_and_award(learner["id"]) == []

    def test_unknown_requirement_type_is_never_awarded(self, make_user, db):
        learner = make_user("bob")
        db.add("achievements", code="mystery", name="Mystery", icon="?", category="other", points=5,
               requirement_type="friends_invited", requirement_value=0)
        db.add("achievements", code="untyped", name="Untyped", icon="?", category="other", points=5,
               requirement_type=None, requirement_value=0)
        assert AchievementService(db).check_and_award(learner["id"]) == []
        assert db.rows("user_achievements") == []


class TestSeedContent:
    """Tests for the seed script."""

    def test_seed_achievements_is_idempotent(self, db):
        assert seed_achievements(db) == len(ACHIEVEMENTS)
        db.rows("achievements")[0]["name"] = "Renamed"
        assert seed_achievements(db) == len(ACHIEVEMENTS)
        assert len(db.rows("achievements")) == len(ACHIEVEMENTS)
        assert db.rows("achievements")[0]["name"] == ACHIEVEMENTS[0]["name"]

    def test_seed_evaluation_test_keeps_existing_questions(self, db):
        assert seed_evaluation_test(db) == 1
        db.rows("evaluation_test")[0]["questions"] = [{"id": "q1"}]
        assert seed_evaluation_test(db) == 0
        test = db.rows("evaluation_test")[0]
        assert test["id"] == DEFAULT_EVALUATION_TEST_ID
        assert test["questions"] == [{"id": "q1"}]
