# Supabase tables: lessons, lesson_activities, vocabulary_items, grammar_sentences, lesson_history
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

lessons:
- id: text (primary key) - e.g. 'A1-L01'; generated when not supplied
- level: text (not null) - CEFR level A1..C2
- topic: text (not null)
- lesson_number: integer (not null), unique per level
- version: integer (default: 1) - bumped on every admin edit
- last_modified_by: uuid (nullable, references users.id)
- last_modified_at: timestamp (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

lesson_activities:
- id: uuid (primary key)
- lesson_id: text (foreign key to lessons.id, on delete cascade)
- activity_type: text (not null) - see ACTIVITY_TYPE_GROUPS in learning_config
- activity_order: integer (not null)
- title: text (nullable)
- description: text (nullable)
- estimated_time_seconds: integer (nullable)
- content: jsonb (default: '{}') - type-specific payload (prompt, blanks, rules, target_text...)
- active: boolean (default: true) - inactive activities keep their historic results
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

vocabulary_items:
- id: uuid (primary key)
- activity_id: uuid (foreign key to lesson_activities.id, on delete cascade)
- english_word: text (not null)
- thai_translation: text (not null)
- audio_url: text (nullable)
- image_url: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

grammar_sentences:
- id: uuid (primary key)
- activity_id: uuid (foreign key to lesson_activities.id, on delete cascade)
- original_sentence: text (nullable)
- correct_sentence: text (not null)
- words_array: jsonb (array of words to arrange)
- created_at: timestamp (default: now())

lesson_history:
- id: uuid (primary key)
- lesson_id: text (foreign key to lessons.id)
- version: integer (not null) - lesson version produced by the edit; unique (lesson_id, version)
- changed_by: uuid (nullable, references users.id)
- changes: jsonb - {"before": {...lesson + activities}, "after": {...request payload}}
- created_at: timestamp (default: now())
"""
