"""Canonical enum values for leads, conversations and agent executions."""

from __future__ import annotations

import enum


class LeadStatus(str, enum.Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    NEGOTIATING = "negotiating"
    WON = "won"
    LOST = "lost"


class LeadTemperature(str, enum.Enum):
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class AgentType(str, enum.Enum):
    """Sales stages handled by a persona.

    Older rows may carry ``closer`` for the last stage; it is the same stage
    as ``ae``.
    """

    SDR = "sdr"
    BDR = "bdr"
    AE = "ae"

    @classmethod
    def parse(cls, value: str | None) -> "AgentType":
        if value is None:
            return cls.SDR
        normalized = str(value).strip().lower()
        if normalized == "closer":
            return cls.AE
        try:
            return cls(normalized)
        except ValueError:
            return cls.SDR


class IntentType(str, enum.Enum):
    GREETING = "greeting"
    PRICING = "pricing"
    FEATURES = "features"
    TECHNICAL = "technical"
    OBJECTION = "objection"
    CLOSING = "closing"
    SUPPORT = "support"
    OFF_HOURS = "off_hours"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: str | None) -> "IntentType":
        """Map free-form classifier output onto the closed intent set."""
        if not value:
            return cls.UNKNOWN
        normalized = str(value).strip().strip(".\"'`").lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


class MessageDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ExecutionStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class OpportunityLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class JobState(str, enum.Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


MARKET_ANALYSIS_TYPE = "market_analysis"
