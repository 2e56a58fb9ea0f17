"""Unit tests for data export and the narrative history projection."""

import json
from datetime import date, datetime

from zenith.core.export import build_export, export_json, project_history
from zenith.core.models import Archetype, Habit, HabitLog, User


TODAY = date(2024, 3, 31)


def make_user() -> User:
    return User(email="op@example.com", api_key_hash="abc123", created_at=datetime(2024, 1, 1))


class TestExport:
    """Tests for build_export and export_json."""

    def test_structural_dump(self):
        """Export contains user, habits and logs as plain JSON."""
        habit = Habit(id="h1", owner_id="u1", name="Workout", archetype=Archetype.PHYSICAL)
        log = HabitLog(owner_id="u1", habit_id="h1", log_date=date(2024, 3, 1), completed=True, note="felt good")
        bundle = build_export(make_user(), [habit], [log], exported_at=datetime(2024, 3, 31, 12, 0))

        data = json.loads(export_json(bundle))

        assert data["user"]["email"] == "op@example.com"
        assert data["habits"][0]["name"] == "Workout"
        assert data["habits"][0]["archetype"] == "PHYSICAL"
        assert data["logs"][0]["log_date"] == "2024-03-01"
        assert data["logs"][0]["note"] == "felt good"
        assert data["exported_at"].startswith("2024-03-31T12:00")

    def test_api_key_hash_excluded(self):
        """The key hash never leaves the server in an export."""
        data = json.loads(export_json(build_export(make_user(), [], [])))
        assert "api_key_hash" not in data["user"]
        assert data["habits"] == []
        assert data["logs"] == []


class TestProjectHistory:
    """Tests for project_history."""

    def test_window_and_fields(self):
        """Only the last 30 days are kept, with reduced fields."""
        habit = Habit(id="h1", owner_id="u1", name="Workout", archetype=Archetype.PHYSICAL)
        logs = [
            HabitLog(owner_id="u1", habit_id="h1", log_date=date(2024, 3, 1), completed=True, energy_level=4, note="x"),
            HabitLog(owner_id="u1", habit_id="h1", log_date=date(2024, 2, 29), completed=True),
        ]

        history = project_history([habit], logs, today=TODAY)

        assert len(history) == 1
        entry = history[0]
        assert entry.habit == "Workout"
        assert entry.archetype == Archetype.PHYSICAL
        assert entry.energy_level == 4
        assert "note" not in entry.model_dump()

    def test_unknown_habit(self):
        """Logs without a habit keep empty name and archetype."""
        logs = [HabitLog(owner_id="u1", habit_id="gone", log_date=TODAY)]
        history = project_history([], logs, today=TODAY)
        assert history[0].habit is None
        assert history[0].archetype is None
