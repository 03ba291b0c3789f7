"""Agent dispatch: classify, gate, route, prompt and decide the lead transition."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from sqlalchemy.orm import Session

from salesflow.agents.extraction import classify_intent, extract_lead_info, merge_metadata
from salesflow.agents.prompts import FALLBACK_REPLY, PromptContext, render_persona
from salesflow.agents.router import NO_TRANSITION, BusinessHours, Transition, compute_transition, route
from salesflow.core.config import DEFAULT_OFF_HOURS_REPLIES
from salesflow.core.enums import AgentType, IntentType
from salesflow.core.exceptions import AgentDispatchError, CompletionError
from salesflow.database.models import Lead
from salesflow.services.completion_client import ChatMessage, CompletionClient
from salesflow.services.execution_service import ExecutionService
from salesflow.services.market_analysis_service import (
    AnalysisResult,
    MarketAnalysisService,
    format_for_agent,
    should_trigger_analysis,
)
from salesflow.services.memory_service import MemoryService

logger = logging.getLogger(__name__)


@dataclass
class AgentReply:
    text: str
    intent: IntentType
    agent: AgentType
    off_hours: bool = False
    execution_id: int | None = None
    tokens_used: int = 0
    execution_time_ms: int = 0
    transition: Transition = NO_TRANSITION
    metadata: dict[str, Any] | None = None
    market_analysis: AnalysisResult | None = None
    extracted: dict[str, Any] = field(default_factory=dict)


class AgentDispatcher:
    def __init__(
        self,
        db: Session,
        completion: CompletionClient,
        memory: MemoryService,
        market: MarketAnalysisService,
        executions: ExecutionService | None = None,
        business_hours: BusinessHours | None = None,
        off_hours_replies: Sequence[str] = DEFAULT_OFF_HOURS_REPLIES,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.db = db
        self.completion = completion
        self.memory = memory
        self.market = market
        self.executions = executions or ExecutionService(db)
        self.business_hours = business_hours or BusinessHours()
        self.off_hours_replies = tuple(off_hours_replies) or DEFAULT_OFF_HOURS_REPLIES
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.Random()

    def route_and_respond(self, lead: Lead, message: str) -> AgentReply:
        """Produce the reply for one inbound message.

        Raises ``AgentDispatchError`` carrying a fallback reply when any step
        fails; the lead is not modified in that case.
        """
        started = perf_counter()
        lead_id = lead.id
        agent = route(lead.status, lead.temperature)
        execution_id: int | None = None
        try:
            intent = classify_intent(self.completion, message)

            if not self.business_hours.is_open(self._clock()):
                return self._off_hours_reply(lead, agent)

            execution = self.executions.start(lead_id, agent, message, intent=intent)
            execution_id = execution.id

            prior_metadata = dict(lead.meta or {})
            extracted = extract_lead_info(self.completion, message)
            metadata = merge_metadata(prior_metadata, extracted)

            analysis: AnalysisResult | None = None
            if agent is AgentType.SDR and should_trigger_analysis(prior_metadata, extracted):
                analysis = self.market.analyze(lead, metadata.get("address"), metadata.get("instagram"))
            elif agent is AgentType.BDR:
                analysis = self.market.cached_result(lead_id)

            context = self.memory.build_context(lead, metadata)
            prompt = self._build_prompt(lead, agent, intent, metadata, context.text, analysis)
            result = self.completion.complete(
                [ChatMessage("system", prompt), ChatMessage("user", message)],
                temperature=0.7,
                max_tokens=500,
            )
            text = result.content.strip()
            if not text:
                raise CompletionError("completion returned an empty reply")

            transition = compute_transition(intent, agent, lead.status)
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.info(
                "agent.dispatch.completed",
                extra={
                    "event": "agent.dispatch.completed",
                    "lead_id": lead_id,
                    "agent_name": agent.value,
                    "intent": intent.value,
                    "tokens_used": result.tokens_used,
                    "execution_time_ms": elapsed_ms,
                    "new_status": transition.status.value if transition.status else None,
                },
            )
            return AgentReply(
                text=text,
                intent=intent,
                agent=agent,
                execution_id=execution_id,
                tokens_used=result.tokens_used,
                execution_time_ms=elapsed_ms,
                transition=transition,
                metadata=metadata,
                market_analysis=analysis,
                extracted=extracted,
            )
        except Exception as exc:
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.exception(
                "agent.dispatch.failed",
                extra={
                    "event": "agent.dispatch.failed",
                    "lead_id": lead_id,
                    "agent_name": agent.value,
                    "error": str(exc),
                },
            )
            if execution_id is not None:
                try:
                    self.executions.fail(execution_id, str(exc), execution_time_ms=elapsed_ms)
                except Exception:
                    logger.exception(
                        "agent.execution.fail_not_recorded",
                        extra={"event": "agent.execution.fail_not_recorded", "execution_id": execution_id},
                    )
            fallback = AgentReply(
                text=FALLBACK_REPLY,
                intent=IntentType.UNKNOWN,
                agent=agent,
                execution_id=execution_id,
                execution_time_ms=elapsed_ms,
            )
            raise AgentDispatchError(fallback, exc) from exc

    def _off_hours_reply(self, lead: Lead, agent: AgentType) -> AgentReply:
        text = self._rng.choice(self.off_hours_replies)
        logger.info(
            "agent.dispatch.off_hours",
            extra={"event": "agent.dispatch.off_hours", "lead_id": lead.id, "agent_name": agent.value},
        )
        return AgentReply(text=text, intent=IntentType.OFF_HOURS, agent=agent, off_hours=True)

    def _build_prompt(
        self,
        lead: Lead,
        agent: AgentType,
        intent: IntentType,
        metadata: dict[str, Any],
        context_text: str,
        analysis: AnalysisResult | None,
    ) -> str:
        prompt_context = PromptContext(
            name=lead.name,
            church_name=lead.church_name,
            status=lead.status,
            temperature=lead.temperature,
            address=metadata.get("address"),
            instagram=metadata.get("instagram"),
            competitor_count=analysis.competitor_count if analysis else None,
            digital_score=analysis.digital_score if analysis else None,
            interested_plan=metadata.get("interested_plan"),
            previous_objections=metadata.get("previous_objections"),
        )
        sections = [render_persona(agent, prompt_context), context_text]
        if agent is AgentType.BDR and analysis is not None:
            sections.append(format_for_agent(analysis))
        sections.append(f"INTENÇÃO DETECTADA: {intent.value}")
        return "\n\n".join(sections)
