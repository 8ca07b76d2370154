# The admin module owns no tables of its own.
# It reads and writes the tables documented in:
#   app/modules/auth/models.py         users, user_sessions, otp_verifications
#   app/modules/lessons/models.py      lessons, lesson_activities, vocabulary_items,
#                                      grammar_sentences, lesson_history
#   app/modules/progress/models.py     user_progress, lesson_activity_results
#   app/modules/evaluation/models.py   evaluation_test, evaluation_results
#   app/modules/achievements/models.py achievements, user_achievements
