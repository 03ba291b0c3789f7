"""Stage routing, business-hours gate and lead state transitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from salesflow.core.config import Config
from salesflow.core.enums import AgentType, IntentType, LeadStatus, LeadTemperature

_STAGE_BY_STATUS = {
    LeadStatus.NEW.value: AgentType.SDR,
    LeadStatus.CONTACTED.value: AgentType.SDR,
    LeadStatus.QUALIFIED.value: AgentType.BDR,
    LeadStatus.NEGOTIATING.value: AgentType.AE,
    LeadStatus.WON.value: AgentType.AE,
}

_STAGE_BY_TEMPERATURE = {
    LeadTemperature.HOT.value: AgentType.AE,
    LeadTemperature.WARM.value: AgentType.BDR,
}


def _value(item) -> str:
    return item.value if hasattr(item, "value") else str(item or "").strip().lower()


def route(status: LeadStatus | str | None, temperature: LeadTemperature | str | None) -> AgentType:
    """Pick the persona for a lead; unknown statuses fall back to temperature."""
    stage = _STAGE_BY_STATUS.get(_value(status))
    if stage is not None:
        return stage
    return _STAGE_BY_TEMPERATURE.get(_value(temperature), AgentType.SDR)


@dataclass(frozen=True)
class Transition:
    status: LeadStatus | None = None
    temperature: LeadTemperature | None = None
    assigned_agent: AgentType | None = None

    @property
    def changed(self) -> bool:
        return self.status is not None or self.temperature is not None


NO_TRANSITION = Transition()


def compute_transition(
    intent: IntentType,
    agent: AgentType,
    status: LeadStatus | str | None,
) -> Transition:
    """Apply the first matching rule.

    Closing hands the lead to the ae and a technical qualification hands it to
    the bdr. A pricing qualification keeps the current agent; routing follows
    the new status either way.
    """
    current = _value(status)

    if intent is IntentType.CLOSING:
        return Transition(LeadStatus.NEGOTIATING, LeadTemperature.HOT, AgentType.AE)
    if intent is IntentType.PRICING and current not in (
        LeadStatus.QUALIFIED.value,
        LeadStatus.NEGOTIATING.value,
    ):
        return Transition(LeadStatus.QUALIFIED, LeadTemperature.WARM)
    if intent is IntentType.TECHNICAL and current in (LeadStatus.NEW.value, LeadStatus.CONTACTED.value):
        return Transition(LeadStatus.QUALIFIED, LeadTemperature.WARM, AgentType.BDR)
    if agent is AgentType.SDR and current == LeadStatus.NEW.value:
        return Transition(LeadStatus.CONTACTED, LeadTemperature.WARM)
    return NO_TRANSITION


@dataclass(frozen=True)
class BusinessHours:
    """Weekly opening window at a fixed UTC offset."""

    days: tuple[int, ...] = (0, 1, 2, 3, 4)
    start_hour: int = 8
    end_hour: int = 18
    utc_offset_hours: int = -3

    @classmethod
    def from_config(cls, config: Config) -> "BusinessHours":
        return cls(
            days=tuple(config.BUSINESS_DAYS),
            start_hour=config.BUSINESS_HOUR_START,
            end_hour=config.BUSINESS_HOUR_END,
            utc_offset_hours=config.BUSINESS_UTC_OFFSET_HOURS,
        )

    def local_time(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone(timedelta(hours=self.utc_offset_hours)))

    def is_open(self, now: datetime) -> bool:
        local = self.local_time(now)
        return local.weekday() in self.days and self.start_hour <= local.hour < self.end_hour
