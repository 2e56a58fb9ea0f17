"""Streak Engine - Pure functions for consecutive-completion runs.

All functions are pure: same input always produces same output, no side effects.
"""

from datetime import date, timedelta
from typing import Iterable

from .models import HabitLog, StreakResult


def compute_streak(
    habit_id: str,
    logs: Iterable[HabitLog],
    today: date | None = None,
) -> StreakResult:
    """Calculate the current and longest streak for a habit.

    A completed log extends the run only if the previous log is exactly one
    calendar day earlier; otherwise it starts a new run of 1. A log marked
    not completed resets the run to 0. Days with no log at all are simply
    absent from the walk.

    The running streak counts as current only while the last log is dated
    today or yesterday.

    Args:
        habit_id: Habit to compute the streak for
        logs: Logs for any number of habits (others are ignored)
        today: Reference day for liveness (defaults to the current local day)

    Returns:
        StreakResult with current and longest run lengths
    """
    if today is None:
        today = date.today()

    habit_logs = sorted(
        (log for log in logs if log.habit_id == habit_id),
        key=lambda log: log.log_date,
    )

    if not habit_logs:
        return StreakResult(current=0, longest=0)

    longest = 0
    running = 0
    previous: date | None = None

    for log in habit_logs:
        if log.completed:
            if previous is not None and (log.log_date - previous).days == 1:
                running += 1
            else:
                running = 1
        else:
            running = 0

        previous = log.log_date
        longest = max(longest, running)

    last_date = habit_logs[-1].log_date
    if last_date == today or last_date == today - timedelta(days=1):
        current = running
    else:
        current = 0

    return StreakResult(current=current, longest=longest)
