# Supabase tables: achievements, user_achievements
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# The catalogue is seeded from ACHIEVEMENTS in app/config/learning_config.py

"""
Expected Supabase table structure:

achievements:
- id: uuid (primary key)
- code: text (unique, not null)
- name: text (not null)
- description: text (nullable)
- icon: text (nullable) - emoji
- category: text (nullable) - lessons | stars | streaks | levels | evaluation
- points: integer (default: 0)
- requirement_type: text (not null) - see REQUIREMENT_TYPES
- requirement_value: integer (not null) - target; for level_reached the CEFR index (A1 = 1)
- created_at: timestamp (default: now())

user_achievements:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, on delete cascade)
- achievement_id: uuid (foreign key to achievements.id)
- earned_at: timestamp (default: now())
- unique (user_id, achievement_id)
"""
