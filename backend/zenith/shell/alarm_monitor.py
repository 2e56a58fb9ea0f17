"""Alarm Monitor - Periodic scan for scheduled habits whose window opens.

An APScheduler interval job started inside the ASGI lifespan. Each user's
habits are matched against that user's own wall clock. Raised signals are
logged and queued per user until the get_alarms tool drains them.
"""

import logging
import os
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..core.alarms import DEFAULT_DEDUP_CAP, AlarmDeduplicator, due_alarms
from ..core.dates import clock_minute, local_now
from ..core.models import AlarmSignal
from .firestore_client import HabitFirestoreClient


logger = logging.getLogger(__name__)

SCAN_JOB_ID = "alarm_scan"


@dataclass
class AlarmConfig:
    """Configuration for the alarm monitor.

    Attributes:
        enabled: Whether the scan job is started
        interval: Seconds between scans
        pending_limit: Max undelivered signals kept per user
        dedup_cap: Signaled keys remembered per user
    """

    enabled: bool = True
    interval: float = 10.0
    pending_limit: int = 50
    dedup_cap: int = DEFAULT_DEDUP_CAP

    @classmethod
    def from_env(cls) -> "AlarmConfig":
        """Build config from ALARM_* environment variables."""
        return cls(
            enabled=os.environ.get("ALARM_MONITOR_ENABLED", "true").lower() != "false",
            interval=float(os.environ.get("ALARM_INTERVAL_SECONDS", cls.interval)),
        )


class AlarmMonitor:
    """Scans every user's habits and raises each alarm once per minute window."""

    def __init__(self, db: HabitFirestoreClient, config: AlarmConfig | None = None) -> None:
        self._db = db
        self.config = config or AlarmConfig()
        self.scheduler: AsyncIOScheduler | None = None
        self._dedup: dict[str, AlarmDeduplicator] = defaultdict(
            lambda: AlarmDeduplicator(self.config.dedup_cap)
        )
        self._pending: dict[str, deque[AlarmSignal]] = defaultdict(
            lambda: deque(maxlen=self.config.pending_limit)
        )
        # Scan jobs run in the scheduler's worker threads while tools drain
        self._lock = threading.Lock()

    def tick(self, now: datetime | None = None) -> list[AlarmSignal]:
        """Run one scan over all users.

        Args:
            now: Aware instant of the scan (defaults to the current UTC time)

        Returns:
            Signals raised during this scan
        """
        if now is None:
            now = datetime.now(timezone.utc)

        raised: list[AlarmSignal] = []
        for user_id, zone in self._db.list_user_zones().items():
            user_now = local_now(zone, now)
            habits = self._db.list_habits(user_id)
            with self._lock:
                due = due_alarms(habits, user_now, self._dedup[user_id])
            for habit in due:
                signal = AlarmSignal(
                    owner_id=user_id,
                    habit_id=habit.id,
                    habit_name=habit.name,
                    log_date=user_now.date(),
                    minute=clock_minute(user_now),
                )
                logger.info(
                    "Alarm for %s: protocol [%s] window open at %s (%s)",
                    user_id[:8], habit.name, signal.minute, zone,
                )
                with self._lock:
                    self._pending[user_id].append(signal)
                raised.append(signal)
        return raised

    def scan(self) -> None:
        """Scheduled job body. A failed scan is logged and retried next interval."""
        try:
            self.tick()
        except Exception as e:
            logger.error("Alarm scan failed: %s", str(e))

    def drain(self, user_id: str) -> list[AlarmSignal]:
        """Return and clear the undelivered signals of a user."""
        with self._lock:
            pending = self._pending.pop(user_id, None)
        return list(pending) if pending else []

    def start(self) -> None:
        """Schedule the scan job on the running event loop."""
        if self.scheduler is not None:
            logger.warning("Alarm monitor already running")
            return

        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.scheduler.add_job(
            self.scan,
            "interval",
            seconds=self.config.interval,
            id=SCAN_JOB_ID,
            name="Alarm scan",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Alarm monitor started (interval %.0fs)", self.config.interval)

    def stop(self) -> None:
        """Shut the scheduler down without waiting for a scan in flight."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Alarm monitor stopped")
