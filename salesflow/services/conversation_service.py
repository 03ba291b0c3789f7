"""Conversation history storage and lookups."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func

from salesflow.core.enums import AgentType, IntentType, MessageDirection
from salesflow.database.models import ConversationMessage
from salesflow.services.base_service import BaseService


class ConversationService(BaseService):
    def record_message(
        self,
        lead_id: int,
        message: str,
        direction: MessageDirection,
        *,
        agent: AgentType | None = None,
        intent: IntentType | None = None,
        provider_message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        commit: bool = True,
    ) -> ConversationMessage:
        meta = dict(metadata or {})
        if provider_message_id:
            meta.setdefault("message_id", provider_message_id)
        row = ConversationMessage(
            lead_id=lead_id,
            message=message,
            direction=direction.value,
            agent_name=agent.value if agent else None,
            intent_detected=intent.value if intent else None,
            provider_message_id=provider_message_id,
            meta=meta,
        )
        self.db.add(row)
        if commit:
            self.commit()
            self.db.refresh(row)
        else:
            self.db.flush()
        return row

    def has_provider_message(self, provider_message_id: str) -> bool:
        query = self.db.query(ConversationMessage.id).filter(
            ConversationMessage.provider_message_id == provider_message_id
        )
        return self.db.query(query.exists()).scalar()

    def count_for_lead(self, lead_id: int) -> int:
        return (
            self.db.query(func.count(ConversationMessage.id))
            .filter(ConversationMessage.lead_id == lead_id)
            .scalar()
            or 0
        )

    def recent_for_lead(self, lead_id: int, limit: int) -> list[ConversationMessage]:
        """Last ``limit`` messages, returned oldest first."""
        rows = (
            self.db.query(ConversationMessage)
            .filter(ConversationMessage.lead_id == lead_id)
            .order_by(ConversationMessage.created_at.desc(), ConversationMessage.id.desc())
            .limit(limit)
            .all()
        )
        rows.reverse()
        return rows
