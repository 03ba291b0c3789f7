"""Conversation memory: bounded context with a rolling summary per lead."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from salesflow.agents.prompts import NOT_INFORMED, SUMMARY_PROMPT
from salesflow.core.enums import MessageDirection
from salesflow.core.schemas import SummaryResult, parse_schema
from salesflow.database.db import utcnow
from salesflow.database.models import ConversationMessage, ConversationSummary, Lead
from salesflow.services.base_service import BaseService
from salesflow.services.completion_client import CompletionClient
from salesflow.services.conversation_service import ConversationService
from salesflow.utils.validators import sanitize_text

logger = logging.getLogger(__name__)

HISTORY_UNAVAILABLE_NOTE = "(Erro ao carregar histórico de mensagens)"


@dataclass(frozen=True)
class AgentContext:
    text: str
    total_messages: int = 0
    recent_count: int = 0
    has_summary: bool = False
    degraded: bool = False


def should_generate_summary(
    total_messages: int,
    summary: ConversationSummary | None,
    threshold: int = 20,
    drift_threshold: int = 10,
) -> bool:
    if summary is None:
        return total_messages > threshold
    return total_messages - (summary.messages_count or 0) > drift_threshold


def _role(message: ConversationMessage) -> str:
    return "CLIENTE" if message.direction == MessageDirection.INBOUND.value else "AGENTE"


def format_messages(messages: list[ConversationMessage]) -> str:
    if not messages:
        return "Nenhuma mensagem anterior."
    lines = []
    for message in messages:
        stamp = message.created_at.strftime("%d/%m/%Y %H:%M") if message.created_at else "--"
        lines.append(f"[{stamp}] {_role(message)}: {message.message}")
    return "\n".join(lines)


def _lead_block(lead: Lead) -> list[str]:
    return [
        "=== INFORMAÇÕES DO LEAD ===",
        f"Nome: {lead.name or NOT_INFORMED}",
        f"Igreja: {lead.church_name or NOT_INFORMED}",
        f"Telefone: {lead.phone}",
        f"Status: {lead.status}",
        f"Temperatura: {lead.temperature}",
    ]


class MemoryService(BaseService):
    def __init__(
        self,
        db: Session,
        completion: CompletionClient,
        recent_limit: int = 10,
        summary_threshold: int = 20,
        drift_threshold: int = 10,
        summary_source_limit: int = 100,
    ) -> None:
        super().__init__(db)
        self.completion = completion
        self.conversations = ConversationService(db)
        self.recent_limit = recent_limit
        self.summary_threshold = summary_threshold
        self.drift_threshold = drift_threshold
        self.summary_source_limit = summary_source_limit

    def get_summary(self, lead_id: int) -> ConversationSummary | None:
        return self.db.query(ConversationSummary).filter(ConversationSummary.lead_id == lead_id).first()

    def build_context(self, lead: Lead, metadata: dict[str, Any] | None = None) -> AgentContext:
        """Assemble the prompt context for ``lead``. Never raises.

        ``metadata`` overrides ``lead.meta`` for the collected-data block, so facts
        extracted from the current message show up before they are persisted.
        """
        # Rendered up front: a rollback expires the lead.
        minimal = self.minimal_context(lead)
        lead_id = lead.id
        try:
            total = self.conversations.count_for_lead(lead.id)
            recent = self.conversations.recent_for_lead(lead.id, self.recent_limit)
            summary = self.get_summary(lead.id)

            if should_generate_summary(total, summary, self.summary_threshold, self.drift_threshold):
                summary = self.refresh_summary(lead, total)

            collected = lead.meta if metadata is None else metadata
            text = self._render(lead, recent, summary, total, collected or {})
            return AgentContext(
                text=text,
                total_messages=total,
                recent_count=len(recent),
                has_summary=summary is not None,
            )
        except Exception as exc:
            self.rollback()
            logger.exception(
                "memory.context.degraded",
                extra={"event": "memory.context.degraded", "lead_id": lead_id, "error": str(exc)},
            )
            return AgentContext(text=minimal, degraded=True)

    def refresh_summary(self, lead: Lead, total_messages: int) -> ConversationSummary:
        source = self.conversations.recent_for_lead(lead.id, self.summary_source_limit)
        transcript = "\n".join(
            f"{'Cliente' if m.direction == MessageDirection.INBOUND.value else 'Agente'}: {m.message}"
            for m in source
        )
        lead_info = (
            f"Lead: {lead.name or NOT_INFORMED} | Igreja: {lead.church_name or NOT_INFORMED} "
            f"| Status: {lead.status}"
        )
        result = self.completion.prompt(
            SUMMARY_PROMPT,
            f"{lead_info}\n\n{transcript}",
            temperature=0.3,
            max_tokens=500,
        )
        parsed = self._parse_summary(result.content)
        summary = self.upsert_summary(
            lead.id,
            summary=parsed.summary,
            key_points=parsed.key_points,
            messages_count=total_messages,
            last_message_id=source[-1].id if source else None,
        )
        logger.info(
            "memory.summary.generated",
            extra={
                "event": "memory.summary.generated",
                "lead_id": lead.id,
                "messages_count": total_messages,
                "key_points": len(parsed.key_points),
            },
        )
        return summary

    @staticmethod
    def _parse_summary(content: str) -> SummaryResult:
        try:
            return parse_schema(SummaryResult, content)
        except ValueError:
            # Plain-text answers are still a usable summary.
            return SummaryResult(summary=sanitize_text(content) or "Resumo indisponível.", key_points=[])

    def upsert_summary(
        self,
        lead_id: int,
        summary: str,
        key_points: list[str],
        messages_count: int,
        last_message_id: int | None,
    ) -> ConversationSummary:
        row = self.get_summary(lead_id)
        if row is None:
            row = ConversationSummary(lead_id=lead_id)
            self.db.add(row)
        row.summary = summary
        row.key_points = list(key_points)
        row.messages_count = messages_count
        row.last_message_id = last_message_id
        row.updated_at = utcnow()
        self.commit()
        return row

    def _render(
        self,
        lead: Lead,
        recent: list[ConversationMessage],
        summary: ConversationSummary | None,
        total: int,
        metadata: dict[str, Any],
    ) -> str:
        parts = [
            "\n".join(
                _lead_block(lead)
                + [f"Agente Atual: {lead.assigned_agent}", f"Total de Mensagens: {total}"]
            )
        ]

        collected = _collected_lines(metadata)
        if collected:
            parts.append("=== DADOS COLETADOS ===\n" + "\n".join(collected))

        if summary is not None:
            block = f"=== RESUMO DA CONVERSA ===\n{summary.summary}"
            if summary.key_points:
                block += "\n\nPontos-chave:\n" + "\n".join(f"• {point}" for point in summary.key_points)
            parts.append(block)

        parts.append(f"=== ÚLTIMAS {len(recent)} MENSAGENS ===\n{format_messages(recent)}")
        return "\n\n".join(parts)

    @staticmethod
    def minimal_context(lead: Lead) -> str:
        return "\n".join(_lead_block(lead)) + f"\n\n{HISTORY_UNAVAILABLE_NOTE}"


def _collected_lines(metadata: dict[str, Any]) -> list[str]:
    return [f"- {key}: {value}" for key, value in metadata.items() if value is not None and value != ""]
