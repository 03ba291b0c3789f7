from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from salesflow.core.enums import (
    AgentType,
    ExecutionStatus,
    LeadStatus,
    LeadTemperature,
    MARKET_ANALYSIS_TYPE,
    OpportunityLevel,
)

from .db import Base, utcnow


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_status", "status"),
        Index("idx_leads_assigned_agent", "assigned_agent"),
    )

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(32), nullable=False, unique=True)
    name = Column(String)
    church_name = Column(String)
    status = Column(String(20), nullable=False, default=LeadStatus.NEW.value)
    temperature = Column(String(10), nullable=False, default=LeadTemperature.COLD.value)
    assigned_agent = Column(String(10), nullable=False, default=AgentType.SDR.value)
    # "metadata" is reserved on declarative classes.
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    conversations = relationship("ConversationMessage", back_populates="lead")
    executions = relationship("AgentExecution", back_populates="lead")


class ConversationMessage(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_lead_created", "lead_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False)
    message = Column(Text, nullable=False)
    direction = Column(String(10), nullable=False)
    agent_name = Column(String(10))
    intent_detected = Column(String(20))
    provider_message_id = Column(String(128), unique=True, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)

    lead = relationship("Lead", back_populates="conversations")


class AgentExecution(Base):
    __tablename__ = "agent_executions"
    __table_args__ = (
        Index("idx_agent_executions_lead", "lead_id"),
        Index("idx_agent_executions_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False)
    agent_name = Column(String(10), nullable=False)
    input_message = Column(Text, nullable=False)
    output_message = Column(Text)
    intent_detected = Column(String(20))
    tokens_used = Column(Integer, default=0)
    execution_time_ms = Column(Integer, default=0)
    status = Column(String(20), nullable=False, default=ExecutionStatus.STARTED.value)
    error_message = Column(Text)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    lead = relationship("Lead", back_populates="executions")


class ConversationSummary(Base):
    __tablename__ = "conversation_summaries"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, unique=True)
    summary = Column(Text, nullable=False)
    messages_count = Column(Integer, nullable=False, default=0)
    last_message_id = Column(Integer)
    key_points = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    lead = relationship("Lead")


class MarketAnalysis(Base):
    __tablename__ = "market_analyses"
    __table_args__ = (
        Index("idx_market_analyses_lead_type_active", "lead_id", "analysis_type", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False)
    analysis_type = Column(String(50), nullable=False, default=MARKET_ANALYSIS_TYPE)
    address = Column(Text)
    instagram = Column(String(255))
    competitor_count = Column(Integer, nullable=False, default=0)
    digital_score = Column(Integer, nullable=False, default=0)
    opportunity = Column(String(10), nullable=False, default=OpportunityLevel.MEDIUM.value)
    raw_data = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    lead = relationship("Lead")
