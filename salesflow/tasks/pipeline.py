"""Per-message worker pipeline: lead, dedup, dispatch, persist and deliver."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from redis.exceptions import LockError
from sqlalchemy.orm import Session, sessionmaker

from salesflow.agents.dispatcher import AgentDispatcher, AgentReply
from salesflow.core.enums import MessageDirection
from salesflow.core.exceptions import AgentDispatchError, LeadBusyError
from salesflow.core.schemas import InboundMessageJob
from salesflow.database.db import session_scope
from salesflow.services.conversation_service import ConversationService
from salesflow.services.execution_service import ExecutionService
from salesflow.services.lead_service import LeadService
from salesflow.services.messaging_client import HumanizedSender, SendResult
from salesflow.tasks.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    status: str
    lead_id: int | None = None
    lead_created: bool = False
    intent: str | None = None
    agent: str | None = None
    delivered: bool = False
    outbound_message_id: str | None = None


class MessagePipeline:
    def __init__(
        self,
        session_factory: sessionmaker,
        job_store: JobStore,
        sender: HumanizedSender,
        dispatcher_factory: Callable[[Session], AgentDispatcher],
    ) -> None:
        self.session_factory = session_factory
        self.job_store = job_store
        self.sender = sender
        self.dispatcher_factory = dispatcher_factory

    def process(self, job: InboundMessageJob) -> PipelineResult:
        """Run one job while holding the lead's lock."""
        lock = self.job_store.lead_lock(job.phone)
        if not lock.acquire():
            raise LeadBusyError(job.phone)
        try:
            with session_scope(self.session_factory) as db:
                return self._process_locked(db, job)
        finally:
            try:
                lock.release()
            except LockError:
                logger.warning(
                    "pipeline.lock.expired",
                    extra={"event": "pipeline.lock.expired", "phone": job.phone, "job_id": job.message_id},
                )

    def _process_locked(self, db: Session, job: InboundMessageJob) -> PipelineResult:
        leads = LeadService(db)
        conversations = ConversationService(db)

        lead, created = leads.get_or_create(job.phone, job.push_name)
        if conversations.has_provider_message(job.message_id):
            logger.info(
                "pipeline.message.duplicate",
                extra={"event": "pipeline.message.duplicate", "job_id": job.message_id, "lead_id": lead.id},
            )
            return PipelineResult(status="duplicate", lead_id=lead.id)

        try:
            reply = self.dispatcher_factory(db).route_and_respond(lead, job.message)
        except AgentDispatchError as exc:
            self._deliver_fallback(job, exc.fallback)
            raise exc.original

        lead_id = lead.id
        self._persist_turn(db, conversations, lead_id, job, reply)
        if not reply.off_hours:
            leads.apply_turn(
                lead_id,
                status=reply.transition.status,
                temperature=reply.transition.temperature,
                assigned_agent=reply.transition.assigned_agent,
                metadata=reply.metadata,
            )

        sent = self.sender.deliver(job.phone, reply.text)
        if not sent.success:
            logger.warning(
                "pipeline.delivery.failed",
                extra={
                    "event": "pipeline.delivery.failed",
                    "job_id": job.message_id,
                    "lead_id": lead_id,
                    "error": sent.error,
                },
            )
        logger.info(
            "pipeline.message.processed",
            extra={
                "event": "pipeline.message.processed",
                "job_id": job.message_id,
                "lead_id": lead_id,
                "intent": reply.intent.value,
                "agent_name": reply.agent.value,
                "off_hours": reply.off_hours,
                "delivered": sent.success,
            },
        )
        return PipelineResult(
            status="off_hours" if reply.off_hours else "processed",
            lead_id=lead_id,
            lead_created=created,
            intent=reply.intent.value,
            agent=reply.agent.value,
            delivered=sent.success,
            outbound_message_id=sent.message_id,
        )

    def _persist_turn(
        self,
        db: Session,
        conversations: ConversationService,
        lead_id: int,
        job: InboundMessageJob,
        reply: AgentReply,
    ) -> None:
        conversations.record_message(
            lead_id,
            job.message,
            MessageDirection.INBOUND,
            agent=reply.agent,
            intent=reply.intent,
            provider_message_id=job.message_id,
            metadata={"message_id": job.message_id, "timestamp": job.timestamp},
            commit=False,
        )
        outbound = conversations.record_message(
            lead_id,
            reply.text,
            MessageDirection.OUTBOUND,
            agent=reply.agent,
            intent=reply.intent,
            metadata={"execution_id": reply.execution_id} if reply.execution_id else {},
            commit=False,
        )
        conversations.commit()

        if reply.execution_id is not None:
            ExecutionService(db).complete(
                reply.execution_id,
                output_message=reply.text,
                tokens_used=reply.tokens_used,
                execution_time_ms=reply.execution_time_ms,
                metadata={"outbound_conversation_id": outbound.id, "extracted": reply.extracted},
            )

    def _deliver_fallback(self, job: InboundMessageJob, fallback: AgentReply) -> SendResult | None:
        try:
            return self.sender.deliver(job.phone, fallback.text)
        except Exception as exc:
            logger.error(
                "pipeline.fallback.undelivered",
                extra={"event": "pipeline.fallback.undelivered", "job_id": job.message_id, "error": str(exc)},
            )
            return None
