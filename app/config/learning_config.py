"""
Learning Configuration
Defines CEFR levels, title sequences, activity type groups, scoring thresholds
and the achievement catalogue.
Used by the lesson/progress services and by the content seed script.
"""

# CEFR levels a learner can be placed in and advance through, in order
CEFR_LEVELS = ["A1", "A2", "B1", "B2", "C1", "C2"]

# Placement results additionally allow a level below A1
EVALUATION_LEVELS = ["Pre-A1"] + CEFR_LEVELS

# Title sequences per level (10 titles each)
TITLE_SEQUENCES = {
    "A1": ["Tiny Whisker", "Soft Paw", "Curious Kitten", "Bright Eyes", "Happy Purr",
           "Magic Meow", "Wiggly Tail", "Spark Paw", "Charm Cat", "Glow Whisker"],
    "A2": ["Sunny Purr", "Twinkle Fur", "Clever Kitty", "Moon Meow", "Gentle Spellcat",
           "Starry Whisker", "Dreamy Paws", "Golden Meow", "Lucky Cat", "Whisper Whisker"],
    "B1": ["Silky Paws", "Dancing Tail", "Shimmer Cat", "Velvet Purr", "Crystal Eyes",
           "Rainbow Whisker", "Cosmic Kitty", "Aurora Meow", "Nebula Paws", "Stardust Tail"],
    "B2": ["Galaxy Cat", "Celestial Whisker", "Ethereal Purr", "Mystic Eyes", "Enchanted Kitty",
           "Sage Meow", "Wise Whisker", "Noble Paws", "Royal Tail", "Majestic Cat"],
    "C1": ["Regal Purr", "Crown Whisker", "Throne Kitty", "Empire Meow", "Legendary Paws",
           "Mythic Tail", "Ancient Cat", "Timeless Whisker", "Eternal Purr", "Immortal Eyes"],
    "C2": ["Divine Kitty", "Sacred Meow", "Holy Whisker", "Transcendent Paws", "Ascended Tail",
           "Enlightened Cat", "Awakened Purr", "Master Whisker", "Grandmaster Kitty", "TutorCat"],
}

# Completed lessons within a level needed to unlock each next title
LESSONS_PER_TITLE = 5

MAX_TITLE = "TutorCat"

# Activity types grouped by the lesson step they render into.
# Each group lists the current type name first, then legacy aliases.
ACTIVITY_TYPE_GROUPS = {
    "warm_up": ["warm_up_speaking"],
    "vocabulary_intro": ["vocabulary_intro"],
    "vocabulary_matching": ["vocabulary_matching_drag", "vocab_match_drag"],
    "vocabulary_fill_blanks": ["vocabulary_fill_blanks", "vocab_fill_dropdown"],
    "grammar_explanation": ["grammar_explanation"],
    "grammar_sentences": ["grammar_sentences", "grammar_drag_sentence"],
    "speaking": ["speaking_practice", "speaking_with_feedback"],
    "speaking_improvement": ["speaking_improvement"],
    "reading": ["listening_practice", "language_improvement_reading"],
}

# Submitting this activity type always finalizes the lesson
FINAL_ACTIVITY_TYPE = "language_improvement_reading"

# Lesson scoring
PASSING_PERCENTAGE = 60
STAR_THRESHOLDS = [
    (90, 3),
    (80, 2),
    (PASSING_PERCENTAGE, 1),
]

# Evaluation defaults
DEFAULT_EVALUATION_TEST_ID = "EVAL-1"
EVALUATION_PASSING_SCORE = 60

# Dashboard goals
WEEKLY_GOAL_DAYS = 7
DAILY_GOAL_LESSONS = 1
MAX_STREAK_DAYS = 30

# Requirement types understood by the achievement checker
REQUIREMENT_TYPES = [
    "lessons_completed",
    "stars_earned",
    "streak_days",
    "level_reached",
    "evaluation_completed",
]

ACHIEVEMENTS = [
    {"code": "first_lesson", "name": "First Steps", "icon": "🐾", "category": "lessons", "points": 10,
     "description": "Complete your first lesson", "requirement_type": "lessons_completed", "requirement_value": 1},
    {"code": "lessons_5", "name": "Curious Learner", "icon": "📘", "category": "lessons", "points": 20,
     "description": "Complete 5 lessons", "requirement_type": "lessons_completed", "requirement_value": 5},
    {"code": "lessons_10", "name": "Dedicated Student", "icon": "📚", "category": "lessons", "points": 30,
     "description": "Complete 10 lessons", "requirement_type": "lessons_completed", "requirement_value": 10},
    {"code": "lessons_25", "name": "Knowledge Hunter", "icon": "🎓", "category": "lessons", "points": 50,
     "description": "Complete 25 lessons", "requirement_type": "lessons_completed", "requirement_value": 25},
    {"code": "lessons_50", "name": "Lesson Master", "icon": "🏆", "category": "lessons", "points": 100,
     "description": "Complete 50 lessons", "requirement_type": "lessons_completed", "requirement_value": 50},
    {"code": "stars_10", "name": "Star Collector", "icon": "⭐", "category": "stars", "points": 20,
     "description": "Earn 10 stars", "requirement_type": "stars_earned", "requirement_value": 10},
    {"code": "stars_50", "name": "Shining Cat", "icon": "🌟", "category": "stars", "points": 50,
     "description": "Earn 50 stars", "requirement_type": "stars_earned", "requirement_value": 50},
    {"code": "stars_100", "name": "Constellation", "icon": "✨", "category": "stars", "points": 100,
     "description": "Earn 100 stars", "requirement_type": "stars_earned", "requirement_value": 100},
    {"code": "streak_3", "name": "On a Roll", "icon": "🔥", "category": "streaks", "points": 15,
     "description": "Complete lessons 3 days in a row", "requirement_type": "streak_days", "requirement_value": 3},
    {"code": "streak_7", "name": "Week Warrior", "icon": "📅", "category": "streaks", "points": 40,
     "description": "Complete lessons 7 days in a row", "requirement_type": "streak_days", "requirement_value": 7},
    {"code": "streak_30", "name": "Unstoppable", "icon": "💪", "category": "streaks", "points": 150,
     "description": "Complete lessons 30 days in a row", "requirement_type": "streak_days", "requirement_value": 30},
    {"code": "level_a2", "name": "Elementary Explorer", "icon": "🐱", "category": "levels", "points": 50,
     "description": "Reach level A2", "requirement_type": "level_reached", "requirement_value": 2},
    {"code": "level_b1", "name": "Independent Speaker", "icon": "😺", "category": "levels", "points": 75,
     "description": "Reach level B1", "requirement_type": "level_reached", "requirement_value": 3},
    {"code": "level_b2", "name": "Confident Communicator", "icon": "😸", "category": "levels", "points": 100,
     "description": "Reach level B2", "requirement_type": "level_reached", "requirement_value": 4},
    {"code": "level_c1", "name": "Advanced Whisker", "icon": "😻", "category": "levels", "points": 150,
     "description": "Reach level C1", "requirement_type": "level_reached", "requirement_value": 5},
    {"code": "level_c2", "name": "Mastery", "icon": "👑", "category": "levels", "points": 200,
     "description": "Reach level C2", "requirement_type": "level_reached", "requirement_value": 6},
    {"code": "evaluation_done", "name": "Placement Complete", "icon": "📝", "category": "evaluation", "points": 10,
     "description": "Complete the placement evaluation", "requirement_type": "evaluation_completed",
     "requirement_value": 1},
]


def level_index(level):
    """1-based position of a CEFR level (A1 = 1), or 0 when unknown/unset."""
    if level in CEFR_LEVELS:
        return CEFR_LEVELS.index(level) + 1
    return 0


def next_level(level):
    """Next CEFR level, or None at C2 or when the level is unknown."""
    if level not in CEFR_LEVELS:
        return None
    position = CEFR_LEVELS.index(level)
    if position == len(CEFR_LEVELS) - 1:
        return None
    return CEFR_LEVELS[position + 1]


def activity_group(activity_type):
    """Return the step group an activity type belongs to, or None."""
    for group, types in ACTIVITY_TYPE_GROUPS.items():
        if activity_type in types:
            return group
    return None


def stars_for_percentage(percentage):
    for threshold, stars in STAR_THRESHOLDS:
        if percentage >= threshold:
            return stars
    return 0


def level_from_score(percentage):
    """Rough placement used when a test result asks to update the user's level."""
    if percentage >= 90:
        return "B2"
    if percentage >= 80:
        return "B1"
    if percentage >= 70:
        return "A2"
    return "A1"
