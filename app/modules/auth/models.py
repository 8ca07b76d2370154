# Supabase tables: users, user_sessions, otp_verifications
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Authentication is handled by the API itself (bcrypt hashes + JWT cookies),
# not by Supabase Auth

"""
Expected Supabase table structure:

users:
- id: uuid (primary key, default: gen_random_uuid())
- email: text (unique, not null) - stored lower-cased
- username: text (unique, not null)
- first_name: text (nullable)
- last_name: text (nullable)
- password_hash: text (not null) - bcrypt, cost 12
- role: text (default: 'user') - 'user' | 'admin'
- level: text (nullable) - CEFR level, null until the placement evaluation
- current_lesson: integer (default: 1)
- total_stars: integer (default: 0)
- email_verified: boolean (default: false)
- eval_test_result: jsonb (nullable) - summary of the latest placement evaluation
- session_revoked_at: timestamp (nullable) - tokens issued before this are rejected
- last_login: timestamp (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

user_sessions:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, on delete cascade)
- session_token: text (unique, not null)
- expires_at: timestamp (not null)
- created_at: timestamp (default: now())

otp_verifications:
- id: uuid (primary key)
- identifier: text (not null) - email address
- purpose: text (not null) - 'login' | 'email_verification' | 'password_reset'
- otp_hash: text (not null) - HMAC-SHA256(otp_salt, code)
- otp_salt: text (not null)
- expires_at: timestamp (not null)
- attempts: integer (default: 0)
- max_attempts: integer (default: 5)
- used: boolean (default: false)
- used_at: timestamp (nullable)
- created_at: timestamp (default: now())
"""
