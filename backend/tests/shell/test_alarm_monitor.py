"""Unit tests for the alarm monitor with a mocked persistence client."""

import asyncio
from datetime import date, datetime, timezone

import pytest
from unittest.mock import MagicMock

from zenith.core.models import Habit
from zenith.shell.alarm_monitor import SCAN_JOB_ID, AlarmConfig, AlarmMonitor


NOW = datetime(2024, 3, 10, 6, 0, 5, tzinfo=timezone.utc)


def alarm_habit(habit_id: str, owner_id: str, scheduled_time: str = "06:00", **kwargs) -> Habit:
    kwargs.setdefault("alarms_enabled", True)
    return Habit(id=habit_id, owner_id=owner_id, name=habit_id, scheduled_time=scheduled_time, **kwargs)


@pytest.fixture
def db():
    """Persistence mock with two users in UTC."""
    mock = MagicMock()
    mock.list_user_zones.return_value = {"alice0001": "UTC", "bob000002": "UTC"}
    mock.list_habits.side_effect = lambda user_id: {
        "alice0001": [
            Habit(id="wake", owner_id="alice0001", name="Wake up", scheduled_time="06:00", alarms_enabled=True),
            Habit(id="read", owner_id="alice0001", name="Reading", scheduled_time="21:00", alarms_enabled=True),
        ],
        "bob000002": [
            Habit(id="quiet", owner_id="bob000002", name="Silent", scheduled_time="06:00"),
        ],
    }[user_id]
    return mock


class TestTick:
    """Tests for AlarmMonitor.tick."""

    def test_raises_due_alarms(self, db):
        """Only alarm-enabled habits at the current minute signal."""
        monitor = AlarmMonitor(db)

        signals = monitor.tick(NOW)

        assert [(s.owner_id, s.habit_id, s.minute) for s in signals] == [("alice0001", "wake", "06:00")]
        assert signals[0].habit_name == "Wake up"

    def test_same_minute_signals_once(self, db):
        """A second scan within the minute raises nothing."""
        monitor = AlarmMonitor(db)
        monitor.tick(NOW)
        assert monitor.tick(NOW.replace(second=50)) == []

    def test_drain(self, db):
        """Pending signals are delivered once per user."""
        monitor = AlarmMonitor(db)
        monitor.tick(NOW)

        assert [s.habit_id for s in monitor.drain("alice0001")] == ["wake"]
        assert monitor.drain("alice0001") == []
        assert monitor.drain("bob000002") == []


class TestDedupAtScale:
    """More alarms due in one minute than the dedup cap."""

    def test_many_users_same_minute(self):
        """Every user's alarm fires once even when their total exceeds the cap."""
        users = [f"user{i:05d}" for i in range(101)]
        db = MagicMock()
        db.list_user_zones.return_value = {u: "UTC" for u in users}
        db.list_habits.side_effect = lambda user_id: [alarm_habit("h", user_id)]
        monitor = AlarmMonitor(db, AlarmConfig(dedup_cap=100))

        assert len(monitor.tick(NOW)) == 101
        assert monitor.tick(NOW.replace(second=15)) == []
        assert monitor.tick(NOW.replace(second=55)) == []

    def test_one_user_beyond_cap(self):
        """One user with more due habits than the cap is not re-signaled."""
        db = MagicMock()
        db.list_user_zones.return_value = {"alice0001": "UTC"}
        db.list_habits.return_value = [alarm_habit(f"h{i}", "alice0001") for i in range(5)]
        monitor = AlarmMonitor(db, AlarmConfig(dedup_cap=3))

        assert len(monitor.tick(NOW)) == 5
        assert monitor.tick(NOW.replace(second=15)) == []

    def test_next_day_signals_again(self):
        """The same habit fires again on the following day."""
        db = MagicMock()
        db.list_user_zones.return_value = {"alice0001": "UTC"}
        db.list_habits.return_value = [alarm_habit("wake", "alice0001")]
        monitor = AlarmMonitor(db, AlarmConfig(dedup_cap=1))

        monitor.tick(NOW)
        assert len(monitor.tick(NOW.replace(day=11))) == 1


class TestOwnerTimezones:
    """Alarms follow each owner's own wall clock."""

    @pytest.fixture
    def zoned_db(self):
        db = MagicMock()
        db.list_user_zones.return_value = {"london001": "UTC", "newyork01": "America/New_York"}
        db.list_habits.side_effect = lambda user_id: [alarm_habit("wake", user_id, "07:00")]
        return db

    def test_owners_in_different_zones(self, zoned_db):
        """07:00 arrives at different instants for each owner."""
        monitor = AlarmMonitor(zoned_db)

        at_utc_seven = monitor.tick(datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc))
        at_new_york_seven = monitor.tick(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))

        assert [s.owner_id for s in at_utc_seven] == ["london001"]
        assert [s.owner_id for s in at_new_york_seven] == ["newyork01"]

    def test_signal_carries_local_day(self):
        """The signal's day is the owner's day, not the UTC day."""
        db = MagicMock()
        db.list_user_zones.return_value = {"newyork01": "America/New_York"}
        db.list_habits.return_value = [alarm_habit("read", "newyork01", "22:00")]
        monitor = AlarmMonitor(db)

        signals = monitor.tick(datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc))

        assert signals[0].log_date == date(2024, 1, 14)
        assert signals[0].minute == "22:00"


class TestScan:
    """Tests for the scheduled job body."""

    def test_scan_survives_errors(self):
        """A failing scan is logged instead of raised."""
        db = MagicMock()
        db.list_user_zones.side_effect = RuntimeError("firestore down")
        AlarmMonitor(db).scan()
        db.list_user_zones.assert_called_once()


class TestScheduler:
    """Tests for start and stop."""

    def test_start_registers_interval_job(self):
        """The scan runs as a single, coalescing interval job."""
        db = MagicMock()
        db.list_user_zones.return_value = {}
        monitor = AlarmMonitor(db, AlarmConfig(interval=0.05))

        async def scenario():
            monitor.start()
            job = monitor.scheduler.get_job(SCAN_JOB_ID)
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.trigger.interval.total_seconds() == pytest.approx(0.05)
            await asyncio.sleep(0.5)
            monitor.stop()

        asyncio.run(scenario())
        assert monitor.scheduler is None
        assert db.list_user_zones.call_count >= 1

    def test_stop_without_start(self):
        """Stopping an idle monitor is a no-op."""
        monitor = AlarmMonitor(MagicMock())
        monitor.stop()
        assert monitor.scheduler is None


class TestAlarmConfig:
    """Tests for AlarmConfig.from_env."""

    def test_disabled_by_env(self, monkeypatch):
        """ALARM_MONITOR_ENABLED=false disables the monitor."""
        monkeypatch.setenv("ALARM_MONITOR_ENABLED", "false")
        monkeypatch.setenv("ALARM_INTERVAL_SECONDS", "30")
        config = AlarmConfig.from_env()
        assert config.enabled is False
        assert config.interval == 30.0
