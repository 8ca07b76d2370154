# Supabase tables: user_progress, lesson_activity_results
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

user_progress:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, on delete cascade)
- lesson_id: text (foreign key to lessons.id)
- score: integer (default: 0) - running sum while in progress, final total once finalized
- completed: boolean (default: false)
- completed_at: timestamp (nullable)
- attempts: integer (default: 0)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique (user_id, lesson_id)

lesson_activity_results:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, on delete cascade)
- lesson_id: text (foreign key to lessons.id)
- activity_id: uuid (nullable, references lesson_activities.id)
- activity_type: text (not null)
- activity_order: integer (not null)
- score: integer (default: 0)
- max_score: integer (default: 0)
- attempts: integer (default: 1)
- time_spent: integer (default: 0) - seconds
- answers: jsonb (nullable)
- feedback: jsonb (nullable)
- completed_at: timestamp (default: now())
- unique (user_id, lesson_id, activity_id)
"""

"""
Expected Postgres function (called through supabase.rpc):

create or replace function increment_total_stars(p_user_id uuid, p_amount integer)
returns integer
language sql
as $$
  update users
     set total_stars = coalesce(total_stars, 0) + p_amount
   where id = p_user_id
  returning total_stars;
$$;
"""
