"""Agent execution audit log."""

from __future__ import annotations

import logging
from typing import Any

from salesflow.core.enums import AgentType, ExecutionStatus, IntentType
from salesflow.core.exceptions import NotFoundError
from salesflow.database.models import AgentExecution
from salesflow.services.base_service import BaseService

logger = logging.getLogger(__name__)


class ExecutionService(BaseService):
    """Records one row per agent invocation (started -> completed | failed)."""

    def start(
        self,
        lead_id: int,
        agent: AgentType,
        input_message: str,
        intent: IntentType | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AgentExecution:
        execution = AgentExecution(
            lead_id=lead_id,
            agent_name=agent.value,
            input_message=input_message,
            intent_detected=intent.value if intent else None,
            status=ExecutionStatus.STARTED.value,
            meta=dict(metadata or {}),
        )
        self.db.add(execution)
        self.commit()
        self.db.refresh(execution)
        return execution

    def get(self, execution_id: int) -> AgentExecution | None:
        return self.db.query(AgentExecution).filter(AgentExecution.id == execution_id).first()

    def complete(
        self,
        execution_id: int,
        output_message: str,
        tokens_used: int,
        execution_time_ms: int,
        metadata: dict[str, Any] | None = None,
    ) -> AgentExecution:
        execution = self._require(execution_id)
        execution.status = ExecutionStatus.COMPLETED.value
        execution.output_message = output_message
        execution.tokens_used = tokens_used
        execution.execution_time_ms = execution_time_ms
        if metadata:
            execution.meta = {**(execution.meta or {}), **metadata}
        self.commit()
        return execution

    def fail(self, execution_id: int, error: str, execution_time_ms: int | None = None) -> AgentExecution:
        # The failing step may have left the session mid-transaction.
        self.rollback()
        execution = self._require(execution_id)
        execution.status = ExecutionStatus.FAILED.value
        execution.error_message = error[:2000]
        if execution_time_ms is not None:
            execution.execution_time_ms = execution_time_ms
        self.commit()
        logger.warning(
            "agent.execution.failed",
            extra={
                "event": "agent.execution.failed",
                "execution_id": execution_id,
                "lead_id": execution.lead_id,
                "error": execution.error_message,
            },
        )
        return execution

    def _require(self, execution_id: int) -> AgentExecution:
        execution = self.get(execution_id)
        if execution is None:
            raise NotFoundError(f"agent execution {execution_id} not found")
        return execution
