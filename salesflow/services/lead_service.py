"""Lead persistence keyed by phone number."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from salesflow.core.enums import AgentType, LeadStatus, LeadTemperature
from salesflow.core.exceptions import NotFoundError
from salesflow.database.models import Lead
from salesflow.services.base_service import BaseService

logger = logging.getLogger(__name__)


class LeadService(BaseService):
    """Service for lead lookup, creation and per-turn state updates."""

    def get_lead(self, lead_id: int) -> Lead | None:
        return self.db.query(Lead).filter(Lead.id == lead_id).first()

    def get_by_phone(self, phone: str) -> Lead | None:
        return self.db.query(Lead).filter(Lead.phone == phone).first()

    def get_or_create(self, phone: str, push_name: str | None = None) -> tuple[Lead, bool]:
        """Return the lead for ``phone``, creating it on first contact."""
        lead = self.get_by_phone(phone)
        if lead is not None:
            if push_name and not lead.name:
                lead.name = push_name
                self.commit()
            return lead, False

        lead = Lead(
            phone=phone,
            name=push_name,
            status=LeadStatus.NEW.value,
            temperature=LeadTemperature.COLD.value,
            assigned_agent=AgentType.SDR.value,
            meta={},
        )
        self.db.add(lead)
        try:
            self.commit()
        except IntegrityError:
            # Another worker inserted the same phone first.
            existing = self.get_by_phone(phone)
            if existing is None:
                raise
            return existing, False

        self.db.refresh(lead)
        logger.info(
            "lead.created",
            extra={"event": "lead.created", "lead_id": lead.id, "phone": phone},
        )
        return lead, True

    def apply_turn(
        self,
        lead_id: int,
        *,
        status: LeadStatus | None = None,
        temperature: LeadTemperature | None = None,
        assigned_agent: AgentType | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Lead:
        """Persist the outcome of one processed message. Last writer wins."""
        lead = self.get_lead(lead_id)
        if lead is None:
            raise NotFoundError(f"lead {lead_id} not found")

        if status is not None:
            lead.status = status.value
        if temperature is not None:
            lead.temperature = temperature.value
        if assigned_agent is not None:
            lead.assigned_agent = assigned_agent.value
        if metadata is not None:
            # Reassign so the JSON column is flagged dirty.
            lead.meta = dict(metadata)
        self.commit()
        self.db.refresh(lead)
        return lead
