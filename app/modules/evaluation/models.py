# Supabase tables: evaluation_test, evaluation_results
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

evaluation_test:
- id: text (primary key) - e.g. EVAL-1
- test_name: text (not null)
- test_type: text (default: 'comprehensive')
- description: text (nullable)
- passing_score: integer (default: 60)
- allowed_time: integer (default: 45) - minutes
- is_active: boolean (default: true)
- questions: jsonb (array of question objects)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

evaluation_results:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id)
- test_id: text (foreign key to evaluation_test.id)
- overall_score: integer (not null)
- max_score: integer (not null)
- overall_percentage: integer (not null)
- passed: boolean (not null)
- time_spent: integer (nullable) - seconds
- calculated_level: text (nullable) - Pre-A1 | A1..C2
- question_results: jsonb (nullable)
- completed_at: timestamp (nullable)
- created_at: timestamp (default: now())
"""
