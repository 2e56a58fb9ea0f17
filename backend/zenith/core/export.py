"""Data Export - Structural dumps and the narrative history projection.

All functions are pure: same input always produces same output, no side effects.
"""

from datetime import date, datetime, timedelta

from .models import ExportBundle, Habit, HabitLog, HistoryEntry, User


NARRATIVE_WINDOW_DAYS = 30


def build_export(
    user: User,
    habits: list[Habit],
    logs: list[HabitLog],
    exported_at: datetime | None = None,
) -> ExportBundle:
    """Bundle a user's complete data for download."""
    if exported_at is None:
        exported_at = datetime.utcnow()
    return ExportBundle(user=user, habits=habits, logs=logs, exported_at=exported_at)


def export_json(bundle: ExportBundle) -> str:
    """Serialize an export bundle as a single JSON document.

    The API key hash is excluded from the dump.
    """
    return bundle.model_dump_json(indent=2, exclude={"user": {"api_key_hash"}})


def project_history(
    habits: list[Habit],
    logs: list[HabitLog],
    today: date | None = None,
    days: int = NARRATIVE_WINDOW_DAYS,
) -> list[HistoryEntry]:
    """Reduce recent logs to the fields the narrative generator may see.

    Only habit name, archetype, date, completion and energy level are kept;
    notes and identifiers never leave this projection.

    Args:
        habits: All habits (used to resolve name and archetype)
        logs: All logs
        today: Reference day (defaults to the current local day)
        days: Size of the look-back window

    Returns:
        HistoryEntry list for logs dated on or after today - days
    """
    if today is None:
        today = date.today()
    threshold = today - timedelta(days=days)
    by_id = {h.id: h for h in habits}

    history = []
    for log in logs:
        if log.log_date < threshold:
            continue
        habit = by_id.get(log.habit_id)
        history.append(
            HistoryEntry(
                habit=habit.name if habit else None,
                archetype=habit.archetype if habit else None,
                log_date=log.log_date,
                completed=log.completed,
                energy_level=log.energy_level,
            )
        )
    return history
