"""Narrative Client - AI-written status report over recent history.

Talks to any OpenAI-compatible chat completion endpoint. Failures never
propagate: every error path returns a fixed fallback string.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import date

from openai import OpenAI

from ..core.export import project_history
from ..core.models import Habit, HabitLog


logger = logging.getLogger(__name__)

FALLBACK_NARRATIVE = "COULD_NOT_ESTABLISH_NEURAL_LINK. PROCEED WITH RAW DISCIPLINE."
EMPTY_NARRATIVE = "SYSTEM_ERROR: ANALYTICS_OFFLINE_AWAITING_REBOOT"

SYSTEM_PROMPT = """Act as a high-performance "Discipline OS" AI coach.
Analyze 30-day mission logs for behavioral bottlenecks and synchronization efficiency.

Provide a "System Status Report" formatted for an elite operator with three sections:
1. STRATEGIC_OVERVIEW: Summary of overall performance trajectories.
2. ANOMALY_DETECTION: Specific failure patterns (e.g. weekend synchronization drops).
3. OPTIMIZATION_ADVICE: One high-impact tactical adjustment.

Tone: futuristic, tactical, data-driven. Max 100 words. Plain text only."""


@dataclass
class NarrativeConfig:
    """Configuration for the narrative generator.

    Attributes:
        api_key: API key for the endpoint (None disables generation)
        model: Chat model name
        base_url: Alternative OpenAI-compatible endpoint (None for default)
        timeout: Request timeout in seconds
        temperature: Sampling temperature
    """

    api_key: str | None = None
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    timeout: float = 30.0
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> "NarrativeConfig":
        """Build config from NARRATIVE_* environment variables."""
        return cls(
            api_key=os.environ.get("NARRATIVE_API_KEY") or None,
            model=os.environ.get("NARRATIVE_MODEL", cls.model),
            base_url=os.environ.get("NARRATIVE_BASE_URL") or None,
            timeout=float(os.environ.get("NARRATIVE_TIMEOUT", cls.timeout)),
        )


def build_prompt(habits: list[Habit], logs: list[HabitLog], today: date | None = None) -> str:
    """Build the user prompt from protocol configuration and recent history."""
    config = ", ".join(f"{h.name} [{h.archetype.value}]" for h in habits)
    history = [
        {
            "h": entry.habit,
            "a": entry.archetype.value if entry.archetype else None,
            "d": entry.log_date.isoformat(),
            "c": entry.completed,
            "e": entry.energy_level,
        }
        for entry in project_history(habits, logs, today)
    ]
    return (
        f"Current Protocol Configuration: {config}\n"
        f"Historical Execution Data (JSON): {json.dumps(history)}"
    )


class NarrativeClient:
    """Generates short advisory text from habit history."""

    def __init__(self, config: NarrativeConfig | None = None) -> None:
        self.config = config or NarrativeConfig()
        self._client: OpenAI | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    @property
    def client(self) -> OpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    def generate_narrative(
        self, habits: list[Habit], logs: list[HabitLog], today: date | None = None
    ) -> str:
        """Produce a status report, or a fixed fallback string on any failure.

        Args:
            habits: All habits of the user
            logs: All logs of the user (only the last 30 days are sent)
            today: The user's current day, which ends the 30-day window

        Returns:
            Generated text, EMPTY_NARRATIVE for an empty answer, or
            FALLBACK_NARRATIVE if generation is disabled or fails
        """
        if not self.enabled:
            logger.warning("Narrative generation disabled (no NARRATIVE_API_KEY)")
            return FALLBACK_NARRATIVE

        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(habits, logs, today)},
                ],
                temperature=self.config.temperature,
            )
            text = (response.choices[0].message.content or "").strip()
            return text or EMPTY_NARRATIVE
        except Exception as e:
            logger.error("Narrative generation failed: %s", str(e))
            return FALLBACK_NARRATIVE
