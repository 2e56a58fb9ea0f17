"""Metrics Aggregator - Dashboard views derived from a habit/log snapshot.

All functions are pure: same input always produces same output, no side effects.
Nothing is cached; callers recompute on every refresh.
"""

import math
from collections import Counter
from datetime import date, datetime

from .dates import clock_minute, date_range
from .levels import compute_level, total_completions
from .models import (
    ActivityEvent,
    DashboardMetrics,
    DayCompletion,
    Habit,
    HabitLog,
    HabitStreak,
)
from .streaks import compute_streak


BAR_CHART_DAYS = 14
HEATMAP_DAYS = 28
RECENT_ACTIVITY_LIMIT = 10
UNKNOWN_HABIT = "UNKNOWN"


def active_habits(habits: list[Habit]) -> list[Habit]:
    """Habits that are currently active, in their given order."""
    return [h for h in habits if h.is_active]


def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest integer, halves upward."""
    return math.floor(value + 0.5)


def _completion_ratio(completed: int, active_count: int) -> float:
    if active_count == 0:
        return 0.0
    return completed / active_count


def daily_completion_rate(habits: list[Habit], logs: list[HabitLog], day: date) -> float:
    """Percentage of active habits completed on a given day.

    Args:
        habits: All habits (inactive ones are not counted in the denominator)
        logs: All logs
        day: Day to evaluate

    Returns:
        Completion percentage, 0 when there are no active habits
    """
    completed = sum(1 for log in logs if log.log_date == day and log.completed)
    return _completion_ratio(completed, len(active_habits(habits))) * 100


def completion_series(
    habits: list[Habit],
    logs: list[HabitLog],
    days: int,
    today: date | None = None,
) -> list[DayCompletion]:
    """Completion figures for each of the last `days` days, oldest first.

    Args:
        habits: All habits
        logs: All logs
        days: Length of the window (14 for the bar chart, 28 for the heat map)
        today: Last day of the window (defaults to the current local day)

    Returns:
        One DayCompletion per day with a rounded percentage and a raw ratio
    """
    active_count = len(active_habits(habits))
    completed_by_day = Counter(log.log_date for log in logs if log.completed)

    series = []
    for day in date_range(days, today):
        rate = _completion_ratio(completed_by_day[day], active_count)
        series.append(DayCompletion(log_date=day, percentage=round_half_up(rate * 100), rate=rate))
    return series


def rank_streaks(
    habits: list[Habit],
    logs: list[HabitLog],
    today: date | None = None,
) -> list[HabitStreak]:
    """Streaks of every active habit, highest current streak first.

    Ties keep the habits' original order.
    """
    streaks = []
    for habit in active_habits(habits):
        result = compute_streak(habit.id, logs, today)
        streaks.append(
            HabitStreak(
                habit_id=habit.id,
                name=habit.name,
                current=result.current,
                longest=result.longest,
            )
        )
    return sorted(streaks, key=lambda s: s.current, reverse=True)


def upcoming_protocol(habits: list[Habit], now: datetime) -> Habit | None:
    """Next scheduled active habit at or after the current minute.

    Returns:
        The habit with the earliest qualifying scheduled_time, or None when
        nothing else is scheduled today
    """
    current_minute = clock_minute(now)
    candidates = [
        h
        for h in active_habits(habits)
        if h.scheduled_time is not None and h.scheduled_time >= current_minute
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda h: h.scheduled_time)


def recent_activity(
    habits: list[Habit],
    logs: list[HabitLog],
    limit: int = RECENT_ACTIVITY_LIMIT,
) -> list[ActivityEvent]:
    """Most recent completed logs, newest first, with habit names resolved."""
    names = {h.id: h.name for h in habits}
    completed = sorted(
        (log for log in logs if log.completed),
        key=lambda log: log.log_date,
        reverse=True,
    )
    return [
        ActivityEvent(
            log_id=log.id,
            habit_id=log.habit_id,
            habit_name=names.get(log.habit_id, UNKNOWN_HABIT),
            log_date=log.log_date,
        )
        for log in completed[:limit]
    ]


def build_dashboard(
    habits: list[Habit],
    logs: list[HabitLog],
    now: datetime | None = None,
) -> DashboardMetrics:
    """Compute the full dashboard snapshot.

    Args:
        habits: All habits of the user
        logs: All logs of the user
        now: Reference wall-clock time (defaults to local now)

    Returns:
        DashboardMetrics with series, streak ranking, upcoming protocol,
        activity feed and level
    """
    if now is None:
        now = datetime.now()
    today = now.date()

    habit_streaks = rank_streaks(habits, logs, today)
    max_streak = max((s.current for s in habit_streaks), default=0)

    return DashboardMetrics(
        generated_for=today,
        daily_completion=daily_completion_rate(habits, logs, today),
        bar_series=completion_series(habits, logs, BAR_CHART_DAYS, today),
        heatmap=completion_series(habits, logs, HEATMAP_DAYS, today),
        habit_streaks=habit_streaks,
        max_streak=max_streak,
        upcoming=upcoming_protocol(habits, now),
        recent_activity=recent_activity(habits, logs),
        level=compute_level(total_completions(logs)),
    )
