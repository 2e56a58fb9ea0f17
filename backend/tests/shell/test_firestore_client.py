"""Unit tests for the Firestore client with a mocked Firestore."""

from datetime import date, datetime

import pytest
from unittest.mock import MagicMock

from zenith.core.models import Habit, MonthlyReport
from zenith.shell.firestore_client import HabitFirestoreClient, log_doc_id


@pytest.fixture
def fs():
    """Mock Firestore client."""
    return MagicMock()


@pytest.fixture
def db(fs):
    """HabitFirestoreClient wired to the mock."""
    client = HabitFirestoreClient()
    client._client = fs
    return client


def user_collection(fs, name: str) -> MagicMock:
    return fs.collection.return_value.document.return_value.collection(name)


def snapshot(data: dict | None) -> MagicMock:
    doc = MagicMock()
    doc.exists = data is not None
    doc.to_dict.return_value = dict(data) if data else None
    return doc


class TestLogDocId:
    """Tests for log_doc_id."""

    def test_composite_key(self):
        """Document ID combines habit and canonical day."""
        assert log_doc_id("h1", date(2024, 3, 5)) == "h1_2024-03-05"


class TestHabits:
    """Tests for habit persistence."""

    def test_save_habit(self, db, fs):
        """Habits are stored as JSON-safe dicts under their ID."""
        habit = Habit(id="h1", owner_id="user12345", name="Workout", scheduled_time="07:00")

        assert db.save_habit(habit) is True

        habits = user_collection(fs, "habits")
        habits.document.assert_called_with("h1")
        stored = habits.document.return_value.set.call_args[0][0]
        assert stored["name"] == "Workout"
        assert stored["archetype"] == "DISCIPLINE"

    def test_save_habit_failure(self, db, fs):
        """Storage errors return False instead of raising."""
        user_collection(fs, "habits").document.return_value.set.side_effect = RuntimeError("down")
        assert db.save_habit(Habit(owner_id="user12345", name="X")) is False

    def test_list_habits(self, db, fs):
        """Stored documents are parsed into Habits."""
        docs = [snapshot({"id": "h1", "owner_id": "user12345", "name": "Workout", "created_at": datetime(2024, 1, 1)})]
        user_collection(fs, "habits").order_by.return_value.stream.return_value = docs

        habits = db.list_habits("user12345")

        assert [h.name for h in habits] == ["Workout"]

    def test_list_habits_failure(self, db, fs):
        """Read errors return an empty list."""
        user_collection(fs, "habits").order_by.side_effect = RuntimeError("down")
        assert db.list_habits("user12345") == []

    def test_update_habit_missing(self, db, fs):
        """Updating a missing habit returns None."""
        user_collection(fs, "habits").document.return_value.get.return_value = snapshot(None)
        assert db.update_habit("user12345", "nope", {"is_active": False}) is None

    def test_update_habit(self, db, fs):
        """Updates are merged into the stored habit."""
        stored = {"id": "h1", "owner_id": "user12345", "name": "Workout", "is_active": True}
        user_collection(fs, "habits").document.return_value.get.return_value = snapshot(stored)

        habit = db.update_habit("user12345", "h1", {"is_active": False})

        assert habit is not None
        assert habit.is_active is False
        assert habit.name == "Workout"


class TestUpsertLog:
    """Tests for upsert_log."""

    def test_creates_new_log(self, db, fs):
        """A first write creates the log under the composite key."""
        logs = user_collection(fs, "logs")
        logs.document.return_value.get.return_value = snapshot(None)

        log = db.upsert_log("user12345", "h1", date(2024, 3, 5), {"completed": True})

        assert log is not None
        assert log.completed is True
        logs.document.assert_called_with("h1_2024-03-05")
        stored = logs.document.return_value.set.call_args[0][0]
        assert stored["log_date"] == "2024-03-05"

    def test_updates_existing_log(self, db, fs):
        """A second write keeps the record and its other fields."""
        existing = {
            "id": "log-1",
            "owner_id": "user12345",
            "habit_id": "h1",
            "log_date": "2024-03-05",
            "completed": True,
            "note": None,
        }
        logs = user_collection(fs, "logs")
        logs.document.return_value.get.return_value = snapshot(existing)

        log = db.upsert_log("user12345", "h1", date(2024, 3, 5), {"note": "tough one"})

        assert log.id == "log-1"
        assert log.completed is True
        assert log.note == "tough one"

    def test_write_failure(self, db, fs):
        """Write errors return None."""
        logs = user_collection(fs, "logs")
        logs.document.return_value.get.return_value = snapshot(None)
        logs.document.return_value.set.side_effect = RuntimeError("down")
        assert db.upsert_log("user12345", "h1", date(2024, 3, 5), {"completed": True}) is None

    def test_list_logs_parses_dates(self, db, fs):
        """Stored day keys are parsed back into dates."""
        docs = [snapshot({"owner_id": "user12345", "habit_id": "h1", "log_date": "2024-03-05", "completed": True})]
        user_collection(fs, "logs").stream.return_value = docs

        logs = db.list_logs("user12345")

        assert logs[0].log_date == date(2024, 3, 5)


class TestReports:
    """Tests for report persistence."""

    def make_report(self, month: str) -> MonthlyReport:
        return MonthlyReport(
            owner_id="user12345",
            month=month,
            total_days=30,
            perfect_days_count=0,
            avg_completion_rate=10,
            best_habit="A",
            worst_habit="A",
            longest_streak=1,
        )

    def test_create_report_never_overwrites(self, db, fs):
        """Each report is written under its own fresh ID."""
        reports = user_collection(fs, "reports")
        first, second = self.make_report("2024-04"), self.make_report("2024-04")

        assert db.create_report(first) is True
        assert db.create_report(second) is True

        ids = [c.args[0] for c in reports.document.call_args_list]
        assert ids == [first.id, second.id]

    def test_list_reports_newest_first(self, db, fs):
        """Reports are ordered by month, newest first."""
        docs = [snapshot(self.make_report(m).model_dump()) for m in ("2024-02", "2024-04", "2024-03")]
        user_collection(fs, "reports").stream.return_value = docs

        months = [r.month for r in db.list_reports("user12345")]

        assert months == ["2024-04", "2024-03", "2024-02"]


class TestUsers:
    """Tests for list_user_zones."""

    def test_zones_per_user(self, db, fs):
        """Stored zones are returned, missing or unknown ones fall back to UTC."""
        docs = []
        for user_id, data in [
            ("u1", {"timezone": "Asia/Tokyo"}),
            ("u2", {}),
            ("u3", {"timezone": "Nowhere/Special"}),
        ]:
            doc = snapshot(data)
            doc.id = user_id
            docs.append(doc)
        fs.collection.return_value.stream.return_value = docs

        assert db.list_user_zones() == {"u1": "Asia/Tokyo", "u2": "UTC", "u3": "UTC"}

    def test_failure(self, db, fs):
        """Read errors return an empty mapping."""
        fs.collection.return_value.stream.side_effect = RuntimeError("down")
        assert db.list_user_zones() == {}
