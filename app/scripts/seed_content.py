"""
Seed Content Script
Populates the achievement catalogue and the default placement test shell from config.
Safe to run repeatedly; existing rows are updated in place.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.config.learning_config import ACHIEVEMENTS, DEFAULT_EVALUATION_TEST_ID, EVALUATION_PASSING_SCORE
from app.database.supabase_client import get_supabase
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_TEST = {
    "id": DEFAULT_EVALUATION_TEST_ID,
    "test_name": "English Placement Test",
    "test_type": "comprehensive",
    "description": "Placement test covering grammar, vocabulary, reading, listening, writing and speaking",
    "passing_score": EVALUATION_PASSING_SCORE,
    "allowed_time": 45,
    "is_active": True,
}


def seed_achievements(supabase: Client):
    """Seed the achievement catalogue, keyed by code"""
    logger.info("Seeding achievements...")

    created_count = 0
    updated_count = 0

    for achievement in ACHIEVEMENTS:
        try:
            existing = supabase.table("achievements")\
                .select("id")\
                .eq("code", achievement["code"])\
                .execute()

            fields = {key: value for key, value in achievement.items() if key != "code"}
            if existing.data:
                supabase.table("achievements")\
                    .update(fields)\
                    .eq("code", achievement["code"])\
                    .execute()
                updated_count += 1
                logger.debug(f"Updated achievement: {achievement['code']}")
            else:
                supabase.table("achievements").insert(achievement).execute()
                created_count += 1
                logger.debug(f"Created achievement: {achievement['code']}")
        except Exception as e:
            logger.error(f"Error processing achievement {achievement['code']}: {e}")

    logger.info(f"Achievements seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


def seed_evaluation_test(supabase: Client):
    """Create the default placement test without touching an existing one's questions"""
    logger.info("Seeding evaluation test...")
    try:
        existing = supabase.table("evaluation_test")\
            .select("id")\
            .eq("id", DEFAULT_TEST["id"])\
            .execute()
        if existing.data:
            logger.info(f"Evaluation test {DEFAULT_TEST['id']} already exists")
            return 0
        supabase.table("evaluation_test").insert({**DEFAULT_TEST, "questions": []}).execute()
        logger.info(f"Created evaluation test {DEFAULT_TEST['id']}")
        return 1
    except Exception as e:
        logger.error(f"Error seeding evaluation test: {e}")
        return 0


def main():
    """Main function to seed learning content"""
    try:
        supabase = get_supabase()

        logger.info("Starting content seeding...")

        achievement_count = seed_achievements(supabase)
        test_count = seed_evaluation_test(supabase)

        logger.info("Seeding completed successfully!")
        logger.info(f"Total: {achievement_count} achievements, {test_count} evaluation tests processed")

    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
