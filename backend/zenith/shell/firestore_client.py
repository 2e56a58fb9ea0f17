"""Firestore Client - Persistence for habits, logs and reports.

This module handles all database I/O for protocol tracking.
All I/O is contained here; analytics live in the core module.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from google.cloud import firestore

from ..core.dates import DEFAULT_TIMEZONE, day_key, is_known_timezone, parse_day_key
from ..core.models import Habit, HabitLog, MonthlyReport


logger = logging.getLogger(__name__)


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """

    project_id: str | None = None
    database: str | None = None


def log_doc_id(habit_id: str, log_date: date) -> str:
    """Composite document ID enforcing one log per habit per day."""
    return f"{habit_id}_{day_key(log_date)}"


def _log_to_doc(log: HabitLog) -> dict[str, Any]:
    data = log.model_dump()
    data["log_date"] = day_key(log.log_date)
    return data


def _doc_to_log(data: dict[str, Any]) -> HabitLog:
    if isinstance(data.get("log_date"), str):
        data["log_date"] = parse_day_key(data["log_date"])
    return HabitLog(**data)


def _stored_zone(data: dict[str, Any]) -> str:
    zone = data.get("timezone")
    if zone and is_known_timezone(zone):
        return zone
    return DEFAULT_TIMEZONE


class HabitFirestoreClient:
    """Client for persisting habits, logs and reports to Firestore.

    Document structure per user:
        users/{user_id}/
            habits/{habit_id}: { name, archetype, scheduled_time, ... }
            logs/{habit_id}_{YYYY-MM-DD}: { habit_id, log_date, completed, ... }
            reports/{report_id}: { month, avg_completion_rate, ... }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self.client.collection("users").document(user_id)

    def _habit_ref(self, user_id: str, habit_id: str) -> firestore.DocumentReference:
        return self._user_ref(user_id).collection("habits").document(habit_id)

    def _log_ref(self, user_id: str, habit_id: str, log_date: date) -> firestore.DocumentReference:
        return self._user_ref(user_id).collection("logs").document(log_doc_id(habit_id, log_date))

    def _report_ref(self, user_id: str, report_id: str) -> firestore.DocumentReference:
        return self._user_ref(user_id).collection("reports").document(report_id)

    # ==================== User Operations ====================

    def list_user_zones(self) -> dict[str, str]:
        """Map every registered user ID to the timezone they keep their calendar in."""
        try:
            docs = self.client.collection("users").stream()
            return {doc.id: _stored_zone(doc.to_dict() or {}) for doc in docs}
        except Exception as e:
            logger.error("Failed to list users: %s", str(e))
            return {}

    # ==================== Habit Operations ====================

    def list_habits(self, user_id: str) -> list[Habit]:
        """Fetch all habits of a user, ordered by creation time."""
        logger.debug("Fetching habits for user: %s", user_id[:8])
        try:
            habits_ref = self._user_ref(user_id).collection("habits")
            return [Habit(**doc.to_dict()) for doc in habits_ref.order_by("created_at").stream()]
        except Exception as e:
            logger.error("Failed to fetch habits: %s", str(e))
            return []

    def get_habit(self, user_id: str, habit_id: str) -> Habit | None:
        """Fetch a single habit.

        Returns:
            Habit if found, None otherwise
        """
        try:
            doc = self._habit_ref(user_id, habit_id).get()
            if not doc.exists:
                return None
            return Habit(**doc.to_dict())
        except Exception as e:
            logger.error("Failed to fetch habit: %s", str(e))
            return None

    def save_habit(self, habit: Habit) -> bool:
        """Create or overwrite a habit.

        Returns:
            True if successful
        """
        logger.info("Saving habit for %s: %s", habit.owner_id[:8], habit.name)
        try:
            self._habit_ref(habit.owner_id, habit.id).set(habit.model_dump(mode="json"))
            return True
        except Exception as e:
            logger.error("Failed to save habit: %s", str(e))
            return False

    def update_habit(self, user_id: str, habit_id: str, updates: dict[str, Any]) -> Habit | None:
        """Apply field updates to an existing habit.

        Args:
            user_id: The user's ID
            habit_id: ID of the habit to update
            updates: Fields to change

        Returns:
            Updated Habit if successful, None otherwise
        """
        habit = self.get_habit(user_id, habit_id)
        if habit is None:
            logger.warning("Habit not found: %s", habit_id)
            return None

        updated = Habit(**{**habit.model_dump(), **updates})
        if self.save_habit(updated):
            return updated
        return None

    def delete_habit(self, user_id: str, habit_id: str) -> bool:
        """Delete a habit together with all of its logs.

        Returns:
            True if successful
        """
        logger.info("Deleting habit for %s: %s", user_id[:8], habit_id)
        try:
            logs_ref = self._user_ref(user_id).collection("logs")
            batch = self.client.batch()
            for doc in logs_ref.where("habit_id", "==", habit_id).stream():
                batch.delete(doc.reference)
            batch.delete(self._habit_ref(user_id, habit_id))
            batch.commit()
            return True
        except Exception as e:
            logger.error("Failed to delete habit: %s", str(e))
            return False

    # ==================== Log Operations ====================

    def list_logs(self, user_id: str) -> list[HabitLog]:
        """Fetch the full log history of a user."""
        logger.debug("Fetching logs for user: %s", user_id[:8])
        try:
            logs_ref = self._user_ref(user_id).collection("logs")
            logs = [_doc_to_log(doc.to_dict()) for doc in logs_ref.stream()]
            logger.debug("Found %d logs", len(logs))
            return logs
        except Exception as e:
            logger.error("Failed to fetch logs: %s", str(e))
            return []

    def get_log(self, user_id: str, habit_id: str, log_date: date) -> HabitLog | None:
        """Fetch the log of a habit on a given day."""
        try:
            doc = self._log_ref(user_id, habit_id, log_date).get()
            if not doc.exists:
                return None
            return _doc_to_log(doc.to_dict())
        except Exception as e:
            logger.error("Failed to fetch log: %s", str(e))
            return None

    def upsert_log(
        self, user_id: str, habit_id: str, log_date: date, updates: dict[str, Any]
    ) -> HabitLog | None:
        """Create or update the single log for (user, habit, day).

        Existing fields are kept unless present in `updates`, so toggling
        completion does not erase a note and vice versa.

        Args:
            user_id: The user's ID
            habit_id: ID of the habit
            log_date: Day of the log
            updates: Fields to set (completed, note, energy_level)

        Returns:
            The stored HabitLog if successful, None otherwise
        """
        logger.info("Upserting log for %s: %s on %s", user_id[:8], habit_id, log_date)
        existing = self.get_log(user_id, habit_id, log_date)
        if existing is None:
            log = HabitLog(owner_id=user_id, habit_id=habit_id, log_date=log_date, **updates)
        else:
            log = HabitLog(**{**existing.model_dump(), **updates})

        try:
            self._log_ref(user_id, habit_id, log_date).set(_log_to_doc(log))
            return log
        except Exception as e:
            logger.error("Failed to upsert log: %s", str(e))
            return None

    # ==================== Report Operations ====================

    def create_report(self, report: MonthlyReport) -> bool:
        """Store a newly generated report. Existing reports are never replaced.

        Returns:
            True if successful
        """
        logger.info("Storing report for %s: %s", report.owner_id[:8], report.month)
        try:
            self._report_ref(report.owner_id, report.id).set(report.model_dump())
            return True
        except Exception as e:
            logger.error("Failed to store report: %s", str(e))
            return False

    def list_reports(self, user_id: str) -> list[MonthlyReport]:
        """Fetch all reports of a user, newest month first."""
        try:
            reports_ref = self._user_ref(user_id).collection("reports")
            reports = [MonthlyReport(**doc.to_dict()) for doc in reports_ref.stream()]
            return sorted(reports, key=lambda r: r.month, reverse=True)
        except Exception as e:
            logger.error("Failed to fetch reports: %s", str(e))
            return []
