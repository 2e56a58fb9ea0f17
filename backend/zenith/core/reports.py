"""Report Generation - Pure functions for generating monthly reports.

All functions are pure: same input always produces same output, no side effects.
Persisting the generated report is left to the caller.
"""

from collections import defaultdict
from datetime import date
from typing import NamedTuple

from .dates import days_in_month, in_month
from .metrics import round_half_up
from .models import Habit, HabitLog, MonthlyReport
from .streaks import compute_streak


class HabitMonthStats(NamedTuple):
    name: str
    rate: float
    longest: int


def calculate_habit_stats(
    habit: Habit, month_logs: list[HabitLog], total_days: int
) -> HabitMonthStats:
    """Completion rate and longest streak of one habit within a month.

    The rate denominator is the full month length, regardless of when the
    habit was created.

    Args:
        habit: The habit to evaluate
        month_logs: Logs already restricted to the month
        total_days: Number of days in the month

    Returns:
        HabitMonthStats with rate in percent and the month's longest streak
    """
    completed = sum(1 for log in month_logs if log.habit_id == habit.id and log.completed)
    longest = compute_streak(habit.id, month_logs).longest
    return HabitMonthStats(name=habit.name, rate=completed / total_days * 100, longest=longest)


def count_perfect_days(month_logs: list[HabitLog], habit_count: int) -> int:
    """Count days where every habit was logged and every log is completed.

    A day with fewer logs than there are habits never counts, even if each
    recorded log succeeded.
    """
    logs_by_date: dict[date, list[HabitLog]] = defaultdict(list)
    for log in month_logs:
        logs_by_date[log.log_date].append(log)

    return sum(
        1
        for day_logs in logs_by_date.values()
        if len(day_logs) >= habit_count and all(log.completed for log in day_logs)
    )


def generate_monthly_report(
    habits: list[Habit],
    logs: list[HabitLog],
    month: str,
    owner_id: str,
) -> MonthlyReport | None:
    """Generate a monthly report from habits and logs.

    Every call produces a new report with a fresh id; no check is made for
    an existing report of the same month.

    Args:
        habits: All habits of the owner
        logs: Logs of the owner (entries outside `month` are ignored)
        month: Month to summarize (YYYY-MM)
        owner_id: Owner the report belongs to

    Returns:
        MonthlyReport, or None if there are no habits or no logs in the month
    """
    month_logs = [log for log in logs if in_month(log.log_date, month)]

    if not habits or not month_logs:
        return None

    total_days = days_in_month(month)
    stats = [calculate_habit_stats(h, month_logs, total_days) for h in habits]

    # max/min return the first encountered item on ties
    best = max(stats, key=lambda s: s.rate)
    worst = min(stats, key=lambda s: s.rate)
    avg_rate = sum(s.rate for s in stats) / len(stats)

    return MonthlyReport(
        owner_id=owner_id,
        month=month,
        total_days=total_days,
        perfect_days_count=count_perfect_days(month_logs, len(habits)),
        avg_completion_rate=round_half_up(avg_rate),
        best_habit=best.name,
        worst_habit=worst.name,
        longest_streak=max(s.longest for s in stats),
    )
