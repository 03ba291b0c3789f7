"""Process-level wiring of clients, stores and per-job services."""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from redis import Redis
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from salesflow.agents.dispatcher import AgentDispatcher
from salesflow.agents.router import BusinessHours
from salesflow.core.config import Config, get_config
from salesflow.core.exceptions import ConfigurationError
from salesflow.database.db import build_engine, build_session_factory
from salesflow.services.completion_client import CompletionClient
from salesflow.services.market_analysis_service import HeuristicRegionScorer, MarketAnalysisService
from salesflow.services.memory_service import MemoryService
from salesflow.services.messaging_client import HumanizedSender, MessagingClient
from salesflow.tasks.job_store import JobStore
from salesflow.tasks.pipeline import MessagePipeline
from salesflow.tasks.queue import Dispatch, InboundQueue


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ServiceContainer:
    config: Config
    session_factory: sessionmaker
    redis: Redis
    completion: CompletionClient
    messaging: MessagingClient
    clock: Callable[[], datetime] = _utc_now
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], None] = time.sleep
    engine: Engine | None = None
    dispatch: Dispatch | None = None

    def database_engine(self) -> Engine:
        return self.engine or self.session_factory.kw["bind"]

    def job_store(self) -> JobStore:
        return JobStore(self.redis, self.config, clock=lambda: self.clock().timestamp())

    def inbound_queue(self) -> InboundQueue:
        dispatch = self.dispatch
        if dispatch is None:
            from salesflow.tasks.message_tasks import process_inbound_message

            dispatch = process_inbound_message.apply_async
        return InboundQueue(self.job_store(), dispatch, self.config.QUEUE_NAME)

    def humanized_sender(self) -> HumanizedSender:
        return HumanizedSender(self.messaging, self.config, sleep=self.sleep, rng=self.rng)

    def build_dispatcher(self, db: Session) -> AgentDispatcher:
        cfg = self.config
        memory = MemoryService(
            db,
            self.completion,
            recent_limit=cfg.MEMORY_RECENT_LIMIT,
            summary_threshold=cfg.SUMMARY_THRESHOLD,
            drift_threshold=cfg.SUMMARY_DRIFT_THRESHOLD,
            summary_source_limit=cfg.SUMMARY_SOURCE_LIMIT,
        )
        market = MarketAnalysisService(
            db,
            ttl_hours=cfg.MARKET_ANALYSIS_TTL_HOURS,
            clock=self.clock,
            scorer=HeuristicRegionScorer(self.rng),
        )
        return AgentDispatcher(
            db,
            self.completion,
            memory,
            market,
            business_hours=BusinessHours.from_config(cfg),
            off_hours_replies=cfg.OFF_HOURS_REPLIES,
            clock=self.clock,
            rng=self.rng,
        )

    def build_pipeline(self) -> MessagePipeline:
        return MessagePipeline(
            self.session_factory,
            self.job_store(),
            self.humanized_sender(),
            dispatcher_factory=self.build_dispatcher,
        )


def build_container(config: Config | None = None) -> ServiceContainer:
    config = config or get_config()
    engine = build_engine(config.DATABASE_URL, echo=config.DEBUG and not config.is_production)
    return ServiceContainer(
        config=config,
        session_factory=build_session_factory(engine),
        redis=Redis.from_url(config.REDIS_URL, decode_responses=True),
        completion=CompletionClient(config),
        messaging=MessagingClient(config),
        engine=engine,
    )


_container: ServiceContainer | None = None


def bind_container(container: ServiceContainer | None) -> None:
    """Install the process-wide container (worker init, app startup, tests)."""
    global _container
    _container = container


def get_container() -> ServiceContainer:
    if _container is None:
        raise ConfigurationError("service container is not bound for this process")
    return _container
