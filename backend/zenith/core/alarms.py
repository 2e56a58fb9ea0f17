"""Alarm Scheduling - Which scheduled habits should signal this minute.

The deduplication set is an explicit object owned by its caller, so repeated
scans inside the same minute raise each alarm exactly once. One set serves a
single owner, whose keys arrive in wall-clock order.
"""

from collections import OrderedDict
from datetime import datetime

from .dates import clock_minute
from .models import Habit


DEFAULT_DEDUP_CAP = 100

AlarmKey = tuple[str, str, str]


class AlarmDeduplicator:
    """Bounded record of (habit_id, day, minute) keys already signaled.

    Once more than `cap` keys are held, the oldest are evicted. Keys of the
    (day, minute) being marked are never evicted, so the set may exceed `cap`
    while more than `cap` alarms share one minute.
    """

    def __init__(self, cap: int = DEFAULT_DEDUP_CAP) -> None:
        self.cap = cap
        self._keys: OrderedDict[AlarmKey, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: AlarmKey) -> bool:
        return key in self._keys

    def mark(self, key: AlarmKey) -> bool:
        """Record a key.

        Returns:
            True if the key was new, False if it had already been signaled
        """
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self.cap:
            oldest = next(iter(self._keys))
            if oldest[1:] == key[1:]:
                break
            self._keys.popitem(last=False)
        return True


def alarm_key(habit: Habit, now: datetime) -> AlarmKey:
    """Dedup key for a habit at a given wall-clock minute."""
    return (habit.id, now.date().isoformat(), clock_minute(now))


def is_alarm_due(habit: Habit, now: datetime) -> bool:
    """True if the habit is active, alarm-enabled and scheduled for this minute."""
    return (
        habit.is_active
        and habit.alarms_enabled
        and habit.scheduled_time == clock_minute(now)
    )


def due_alarms(habits: list[Habit], now: datetime, dedup: AlarmDeduplicator) -> list[Habit]:
    """Select habits to signal now and mark them as signaled.

    Args:
        habits: Habits to scan
        now: Current local wall-clock time
        dedup: Caller-owned record of keys already signaled

    Returns:
        Habits whose alarm fires for the first time in this minute
    """
    return [h for h in habits if is_alarm_due(h, now) and dedup.mark(alarm_key(h, now))]
