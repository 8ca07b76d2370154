"""
Calendar arithmetic over lesson completion dates (UTC days)
"""

from datetime import date, timedelta
from typing import Any, Dict, Iterable, Optional, Set

from app.config.learning_config import MAX_STREAK_DAYS, WEEKLY_GOAL_DAYS
from app.core.utils import parse_timestamp


def completion_dates(progress_rows: Iterable[Dict[str, Any]]) -> Set[date]:
    dates = set()
    for row in progress_rows:
        if not row.get("completed"):
            continue
        completed_at = parse_timestamp(row.get("completed_at"))
        if completed_at:
            dates.add(completed_at.date())
    return dates


def current_streak(dates: Set[date], today: date) -> int:
    """Consecutive completion days ending today, or yesterday when nothing is done yet today."""
    if not dates:
        return 0
    check = today if today in dates else today - timedelta(days=1)
    streak = 0
    while check in dates and streak < MAX_STREAK_DAYS:
        streak += 1
        check -= timedelta(days=1)
    return streak


def start_of_week(today: date) -> date:
    # Weeks start on Sunday
    return today - timedelta(days=(today.weekday() + 1) % 7)


def weekly_progress(dates: Set[date], today: date, week_start: Optional[date] = None) -> int:
    week_start = week_start or start_of_week(today)
    days = {d for d in dates if week_start <= d <= today}
    return min(len(days), WEEKLY_GOAL_DAYS)
