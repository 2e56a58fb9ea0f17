"""Core Data Models - Pydantic models for type safety.

Habit, HabitLog and MonthlyReport are immutable value records. The remaining
models are derived views returned by the analytics functions.
"""

from datetime import datetime
from datetime import date as DateType
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import uuid

from .dates import DEFAULT_TIMEZONE, is_known_timezone


HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class Archetype(str, Enum):
    """Fixed category tag used for grouping and display."""

    PHYSICAL = "PHYSICAL"
    MENTAL = "MENTAL"
    TECHNICAL = "TECHNICAL"
    SOCIAL = "SOCIAL"
    DISCIPLINE = "DISCIPLINE"


class Habit(BaseModel):
    """A recurring protocol tracked once per day."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    name: str = Field(min_length=1, description="Display name of the protocol")
    archetype: Archetype = Archetype.DISCIPLINE
    scheduled_time: Optional[str] = Field(
        default=None, pattern=HHMM_PATTERN, description="24-hour HH:MM, None if unscheduled"
    )
    alarms_enabled: bool = False
    is_active: bool = True
    is_strict: bool = Field(default=False, description="Failure-intolerant flag (display only)")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class HabitLog(BaseModel):
    """One day's completion record for one habit.

    Unique per (owner_id, habit_id, log_date).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    habit_id: str
    log_date: DateType = Field(description="Local calendar day (YYYY-MM-DD)")
    completed: bool = False
    note: Optional[str] = None
    energy_level: Optional[int] = Field(default=None, ge=1, le=5)


class MonthlyReport(BaseModel):
    """Persisted summary of one month of activity."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    month: str = Field(pattern=MONTH_PATTERN, description="YYYY-MM")
    total_days: int = Field(ge=28, le=31)
    perfect_days_count: int = Field(ge=0)
    avg_completion_rate: int = Field(ge=0, le=100)
    best_habit: str
    worst_habit: str
    longest_streak: int = Field(ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class User(BaseModel):
    """User record stored in Firestore."""

    email: str
    api_key_hash: str = Field(description="SHA256 hash of API key - never store plaintext")
    timezone: str = Field(default=DEFAULT_TIMEZONE, description="IANA zone the owner keeps their calendar in")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if not is_known_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class StreakResult(BaseModel):
    """Current and longest consecutive-completion run for a habit."""

    current: int = Field(ge=0)
    longest: int = Field(ge=0)


class LevelInfo(BaseModel):
    """Experience score and rank tier derived from lifetime completions."""

    xp: int = Field(ge=0)
    rank: str
    next_rank: str = Field(description="'MAX' when the top rank is reached")
    progress: float = Field(ge=0, description="Percent of the way to next_rank")


class DayCompletion(BaseModel):
    """Completion figures for a single day."""

    log_date: DateType
    percentage: int = Field(ge=0, description="Rounded completion percentage")
    rate: float = Field(ge=0, description="Unscaled completion ratio")


class HabitStreak(BaseModel):
    """A habit paired with its streak figures."""

    habit_id: str
    name: str
    current: int
    longest: int


class ActivityEvent(BaseModel):
    """A completed log resolved against its habit's name."""

    log_id: str
    habit_id: str
    habit_name: str
    log_date: DateType


class DashboardMetrics(BaseModel):
    """Everything the dashboard renders, computed from one snapshot."""

    generated_for: DateType
    daily_completion: float
    bar_series: list[DayCompletion]
    heatmap: list[DayCompletion]
    habit_streaks: list[HabitStreak]
    max_streak: int
    upcoming: Optional[Habit] = None
    recent_activity: list[ActivityEvent]
    level: LevelInfo


class HistoryEntry(BaseModel):
    """Reduced log projection handed to the narrative generator."""

    habit: Optional[str]
    archetype: Optional[Archetype]
    log_date: DateType
    completed: bool
    energy_level: Optional[int] = None


class ExportBundle(BaseModel):
    """Full data dump offered for user-initiated download."""

    user: User
    habits: list[Habit]
    logs: list[HabitLog]
    exported_at: datetime = Field(default_factory=datetime.utcnow)


class AlarmSignal(BaseModel):
    """A single raised alarm for a scheduled habit."""

    owner_id: str
    habit_id: str
    habit_name: str
    log_date: DateType
    minute: str = Field(pattern=HHMM_PATTERN)
