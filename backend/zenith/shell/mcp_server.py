"""MCP Server - Tool definitions for Claude integration.

Defines all MCP tools that Claude can invoke for protocol tracking.
Handles authentication via API key in Authorization header.
"""

import logging
import os
from contextvars import ContextVar
from datetime import date

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import ValidationError

from ..core.dates import DEFAULT_TIMEZONE, is_known_timezone, local_now, local_today, month_key
from ..core.export import build_export, export_json
from ..core.levels import compute_level, total_completions
from ..core.metrics import build_dashboard, rank_streaks
from ..core.models import Archetype, Habit
from ..core.reports import generate_monthly_report
from ..core.streaks import compute_streak
from .alarm_monitor import AlarmConfig, AlarmMonitor
from .auth import AuthClient
from .firestore_client import FirestoreConfig, HabitFirestoreClient
from .narrative import NarrativeClient, NarrativeConfig


logger = logging.getLogger(__name__)

# Context variable to store current user_id per request
current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)

# Configure transport security for Cloud Run deployment
transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        "*.run.app:*",
        "*.run.app",
    ],
)

# Initialize FastMCP server with stateless HTTP for cloud deployments
mcp = FastMCP(
    "zenith",
    instructions="""Zenith - Personal protocol (habit) tracker.

Use these tools to help users define daily protocols, record completions,
and review streaks, rank progression and monthly reports.

Dates are YYYY-MM-DD and months are YYYY-MM. Scheduled times are 24-hour HH:MM.
After logging a completion, show the updated dashboard.""",
    stateless_http=True,
    transport_security=transport_security,
)

# Lazy-initialized clients
_firestore_client: HabitFirestoreClient | None = None
_auth_client: AuthClient | None = None
_narrative_client: NarrativeClient | None = None
_alarm_monitor: AlarmMonitor | None = None


def get_firestore_client() -> HabitFirestoreClient:
    """Get or create Firestore client."""
    global _firestore_client
    if _firestore_client is None:
        config = FirestoreConfig(
            database=os.environ.get("FIRESTORE_DATABASE", "zenith"),
        )
        _firestore_client = HabitFirestoreClient(config)
    return _firestore_client


def get_auth_client() -> AuthClient:
    """Get or create Auth client."""
    global _auth_client
    if _auth_client is None:
        _auth_client = AuthClient(get_firestore_client().client)
    return _auth_client


def get_narrative_client() -> NarrativeClient:
    """Get or create the narrative generator client."""
    global _narrative_client
    if _narrative_client is None:
        _narrative_client = NarrativeClient(NarrativeConfig.from_env())
    return _narrative_client


def get_alarm_monitor() -> AlarmMonitor:
    """Get or create the alarm monitor."""
    global _alarm_monitor
    if _alarm_monitor is None:
        _alarm_monitor = AlarmMonitor(get_firestore_client(), AlarmConfig.from_env())
    return _alarm_monitor


def get_user_id() -> str:
    """Get current authenticated user ID.

    Raises:
        RuntimeError: If no user is authenticated
    """
    user_id = current_user_id.get()
    if user_id is None:
        raise RuntimeError("No authenticated user. Ensure API key is provided.")
    return user_id


def get_owner_zone(user_id: str) -> str:
    """Timezone the user keeps their calendar in (UTC if unreadable)."""
    user = get_auth_client().get_user(user_id)
    return user.timezone if user is not None else DEFAULT_TIMEZONE


def _parse_day(date_str: str | None, zone: str) -> date:
    if date_str is None:
        return local_today(zone)
    return date.fromisoformat(date_str)


# ==================== Habit Tools ====================


@mcp.tool()
def create_habit(
    name: str,
    archetype: str = "DISCIPLINE",
    scheduled_time: str | None = None,
    is_strict: bool = False,
    alarms_enabled: bool = False,
) -> dict:
    """Create a new daily protocol.

    Args:
        name: Name of the protocol (e.g., "Workout", "Deep Work")
        archetype: One of PHYSICAL, MENTAL, TECHNICAL, SOCIAL, DISCIPLINE
        scheduled_time: Optional 24-hour time window (HH:MM)
        is_strict: Mark the protocol as failure-intolerant
        alarms_enabled: Raise an alarm when the scheduled window opens

    Returns:
        The created habit
    """
    user_id = get_user_id()
    db = get_firestore_client()

    try:
        habit = Habit(
            owner_id=user_id,
            name=name,
            archetype=Archetype(archetype.upper()),
            scheduled_time=scheduled_time,
            is_strict=is_strict,
            alarms_enabled=alarms_enabled,
        )
    except (ValueError, ValidationError) as e:
        return {"error": f"Invalid habit: {e}"}

    if not db.save_habit(habit):
        return {"error": "Failed to create habit. Please try again."}
    return habit.model_dump(mode="json")


@mcp.tool()
def list_habits() -> list[dict]:
    """List all protocols, scheduled ones first by time, then by creation.

    Returns:
        List of habits
    """
    user_id = get_user_id()
    db = get_firestore_client()

    habits = db.list_habits(user_id)
    # Unscheduled habits sort after all scheduled ones
    ordered = sorted(habits, key=lambda h: (h.scheduled_time is None, h.scheduled_time or "", h.created_at))
    return [h.model_dump(mode="json") for h in ordered]


@mcp.tool()
def set_habit_active(habit_id: str, is_active: bool) -> dict:
    """Activate or deactivate a protocol without deleting its history.

    Args:
        habit_id: ID of the habit
        is_active: New active state

    Returns:
        The updated habit
    """
    user_id = get_user_id()
    habit = get_firestore_client().update_habit(user_id, habit_id, {"is_active": is_active})
    if habit is None:
        return {"error": "Habit not found or update failed."}
    return habit.model_dump(mode="json")


@mcp.tool()
def set_habit_alarm(habit_id: str, alarms_enabled: bool) -> dict:
    """Enable or disable the scheduled-time alarm of a protocol.

    Args:
        habit_id: ID of the habit
        alarms_enabled: New alarm state

    Returns:
        The updated habit
    """
    user_id = get_user_id()
    habit = get_firestore_client().update_habit(user_id, habit_id, {"alarms_enabled": alarms_enabled})
    if habit is None:
        return {"error": "Habit not found or update failed."}
    return habit.model_dump(mode="json")


@mcp.tool()
def delete_habit(habit_id: str) -> dict:
    """Delete a protocol and all of its logs.

    Args:
        habit_id: ID of the habit

    Returns:
        Confirmation
    """
    user_id = get_user_id()
    if not get_firestore_client().delete_habit(user_id, habit_id):
        return {"error": "Delete failed. Please try again."}
    return {"success": True, "deleted": habit_id}


# ==================== Logging Tools ====================


@mcp.tool()
def log_habit(
    habit_id: str,
    completed: bool = True,
    date_str: str | None = None,
    energy_level: int | None = None,
) -> dict:
    """Record completion (or explicit failure) of a protocol for a day.

    A second call for the same habit and day updates the existing log.

    Args:
        habit_id: ID of the habit
        completed: True if executed, False to mark an explicit failure
        date_str: Day in YYYY-MM-DD format (defaults to today in the user's timezone)
        energy_level: Optional energy rating from 1 to 5

    Returns:
        The stored log and the habit's updated streak
    """
    user_id = get_user_id()
    db = get_firestore_client()
    zone = get_owner_zone(user_id)

    try:
        log_date = _parse_day(date_str, zone)
    except ValueError:
        return {"error": "Invalid date format. Use YYYY-MM-DD."}

    if db.get_habit(user_id, habit_id) is None:
        return {"error": "Habit not found."}

    updates: dict = {"completed": completed}
    if energy_level is not None:
        updates["energy_level"] = energy_level

    try:
        log = db.upsert_log(user_id, habit_id, log_date, updates)
    except ValidationError as e:
        return {"error": f"Invalid log: {e}"}
    if log is None:
        return {"error": "Failed to record log. Please try again."}

    streak = compute_streak(habit_id, db.list_logs(user_id), local_today(zone))
    return {
        "log": log.model_dump(mode="json"),
        "streak": streak.model_dump(),
    }


@mcp.tool()
def save_note(habit_id: str, note: str, date_str: str | None = None) -> dict:
    """Attach a note to a protocol's log for a day, keeping its completion state.

    Args:
        habit_id: ID of the habit
        note: Free-form note text
        date_str: Day in YYYY-MM-DD format (defaults to today in the user's timezone)

    Returns:
        The stored log
    """
    user_id = get_user_id()
    db = get_firestore_client()

    try:
        log_date = _parse_day(date_str, get_owner_zone(user_id))
    except ValueError:
        return {"error": "Invalid date format. Use YYYY-MM-DD."}

    if db.get_habit(user_id, habit_id) is None:
        return {"error": "Habit not found."}

    log = db.upsert_log(user_id, habit_id, log_date, {"note": note})
    if log is None:
        return {"error": "Failed to save note. Please try again."}
    return log.model_dump(mode="json")


# ==================== Analytics Tools ====================


@mcp.tool()
def get_dashboard() -> dict:
    """Get today's dashboard: completion, 14/28-day series, streaks, next protocol, activity, rank.

    Returns:
        Dictionary with all dashboard metrics
    """
    user_id = get_user_id()
    db = get_firestore_client()

    now = local_now(get_owner_zone(user_id))
    metrics = build_dashboard(db.list_habits(user_id), db.list_logs(user_id), now)
    data = metrics.model_dump(mode="json")
    if metrics.upcoming is None:
        data["upcoming"] = {"status": "STANDBY"}
    return data


@mcp.tool()
def get_streaks() -> list[dict]:
    """Get current and longest streaks for all active protocols.

    Returns:
        Streaks sorted by current streak, highest first
    """
    user_id = get_user_id()
    db = get_firestore_client()

    today = local_today(get_owner_zone(user_id))
    return [s.model_dump() for s in rank_streaks(db.list_habits(user_id), db.list_logs(user_id), today)]


@mcp.tool()
def get_level() -> dict:
    """Get experience points, rank and progress toward the next rank.

    Returns:
        Dictionary with xp, rank, next_rank and progress
    """
    user_id = get_user_id()
    logs = get_firestore_client().list_logs(user_id)
    return compute_level(total_completions(logs)).model_dump()


@mcp.tool()
def get_status_report() -> dict:
    """Generate an AI-written status report over the last 30 days.

    Returns:
        Dictionary with the report text
    """
    user_id = get_user_id()
    db = get_firestore_client()

    text = get_narrative_client().generate_narrative(
        db.list_habits(user_id), db.list_logs(user_id), local_today(get_owner_zone(user_id))
    )
    return {"report": text}


# ==================== Report Tools ====================


@mcp.tool()
def generate_report(month: str | None = None) -> dict:
    """Generate and store a monthly report.

    Each call stores a new report, even if one exists for the month already.

    Args:
        month: Month in YYYY-MM format (defaults to the current month in the user's timezone)

    Returns:
        The stored report, or an error when there is nothing to report
    """
    user_id = get_user_id()
    db = get_firestore_client()

    month = month or month_key(local_today(get_owner_zone(user_id)))
    try:
        date.fromisoformat(f"{month}-01")
    except ValueError:
        return {"error": "Invalid month format. Use YYYY-MM."}

    report = generate_monthly_report(db.list_habits(user_id), db.list_logs(user_id), month, user_id)
    if report is None:
        return {"error": f"No habits or logs for {month}. Nothing to report."}

    if not db.create_report(report):
        return {"error": "Failed to store report. Please try again."}
    return report.model_dump(mode="json")


@mcp.tool()
def list_reports() -> list[dict]:
    """List stored monthly reports, newest month first.

    Returns:
        List of reports
    """
    user_id = get_user_id()
    return [r.model_dump(mode="json") for r in get_firestore_client().list_reports(user_id)]


# ==================== Data Tools ====================


@mcp.tool()
def export_data() -> str:
    """Export the user's profile, habits and logs as one JSON document.

    Returns:
        JSON string
    """
    user_id = get_user_id()
    db = get_firestore_client()

    user = get_auth_client().get_user(user_id)
    if user is None:
        raise RuntimeError("User record not found.")

    return export_json(build_export(user, db.list_habits(user_id), db.list_logs(user_id)))


@mcp.tool()
def get_alarms() -> list[dict]:
    """Get alarms raised for scheduled protocols since the last call.

    Returns:
        List of alarm signals
    """
    user_id = get_user_id()
    return [s.model_dump(mode="json") for s in get_alarm_monitor().drain(user_id)]


@mcp.tool()
def set_timezone(timezone: str) -> dict:
    """Set the IANA timezone used for the user's days, streaks and alarms.

    Args:
        timezone: Zone name, e.g. "Europe/Berlin" or "America/New_York"

    Returns:
        The stored timezone
    """
    user_id = get_user_id()
    if not is_known_timezone(timezone):
        return {"error": f"Unknown timezone: {timezone}"}
    if not get_auth_client().set_timezone(user_id, timezone):
        return {"error": "Failed to update timezone. Please try again."}
    return {"timezone": timezone}
