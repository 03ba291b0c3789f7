from __future__ import annotations

import random
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from salesflow.core.enums import OpportunityLevel
from salesflow.database.models import MarketAnalysis
from salesflow.services.lead_service import LeadService
from salesflow.services.market_analysis_service import (
    AnalysisResult,
    HeuristicRegionScorer,
    MarketAnalysisService,
    fallback_analysis,
    format_for_agent,
    should_trigger_analysis,
)

from tests.fakes import BUSINESS_OPEN

NOW = BUSINESS_OPEN.replace(tzinfo=None)


def _lead(db):
    lead, _ = LeadService(db=db).get_or_create("5511999990001")
    return lead


def _existing(db, lead, age: timedelta) -> MarketAnalysis:
    row = MarketAnalysis(
        lead_id=lead.id,
        competitor_count=9,
        digital_score=2,
        opportunity="high",
        raw_data={"insights": ["antiga"], "recommendations": []},
        created_at=NOW - age,
    )
    db.add(row)
    db.commit()
    return row


def _service(db, scorer=None):
    return MarketAnalysisService(
        db,
        ttl_hours=24,
        clock=lambda: BUSINESS_OPEN,
        scorer=scorer or HeuristicRegionScorer(random.Random(3)),
    )


def test_trigger_only_on_first_address_or_instagram():
    assert should_trigger_analysis({}, {"address": "Rua A, 1"}) is True
    assert should_trigger_analysis({}, {"instagram": "@igreja"}) is True
    assert should_trigger_analysis({"address": "Rua A, 1"}, {"address": "Rua B, 2"}) is False
    assert should_trigger_analysis({"address": "Rua A, 1"}, {"instagram": "@igreja"}) is True
    assert should_trigger_analysis({}, {"city": "Campinas"}) is False


def test_analysis_younger_than_ttl_is_reused(db):
    lead = _lead(db)
    _existing(db, lead, timedelta(hours=23))

    result = _service(db).analyze(lead, "Rua A, 1", None)

    assert result.competitor_count == 9
    assert result.insights == ["antiga"]
    assert db.query(MarketAnalysis).count() == 1


def test_expired_analysis_is_replaced(db):
    lead = _lead(db)
    old = _existing(db, lead, timedelta(hours=25))

    result = _service(db).analyze(lead, "Av. Paulista, São Paulo", "@igreja")

    assert result.opportunity is OpportunityLevel.HIGH
    assert 8 <= result.competitor_count <= 17
    assert 4 <= result.digital_score <= 7
    db.refresh(old)
    assert old.is_active is False
    active = db.query(MarketAnalysis).filter_by(lead_id=lead.id, is_active=True).one()
    assert active.created_at == NOW
    assert active.address == "Av. Paulista, São Paulo"
    assert active.raw_data["insights"] == result.insights


def test_rural_address_without_instagram():
    result = HeuristicRegionScorer(random.Random(1))("Sítio Boa Vista, zona rural", None)

    assert 1 <= result.competitor_count <= 3
    assert 1 <= result.digital_score <= 3
    assert result.opportunity is OpportunityLevel.MEDIUM
    assert any("baixa concorrência" in insight for insight in result.insights)
    assert "Criar perfis profissionais nas redes sociais" in result.recommendations


def test_scorer_failure_returns_fallback(db):
    def broken(address, instagram):
        raise RuntimeError("places api down")

    lead = _lead(db)
    result = _service(db, scorer=broken).analyze(lead, "Rua A, 1", None)

    assert result == fallback_analysis()
    assert db.query(MarketAnalysis).count() == 0


def test_database_loss_during_commit_returns_fallback(db, monkeypatch):
    lead = _lead(db)

    def unreachable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("server closed the connection"))

    def broken_commit():
        db.rollback()
        monkeypatch.setattr(db, "execute", unreachable)
        raise OperationalError("COMMIT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(db, "commit", broken_commit)

    result = _service(db).analyze(lead, "Rua A, 1", None)

    assert result == fallback_analysis()


def test_cached_result_ignores_age(db):
    lead = _lead(db)
    _existing(db, lead, timedelta(days=30))

    cached = _service(db).cached_result(lead.id)

    assert cached is not None
    assert cached.competitor_count == 9


def test_format_for_agent_block():
    text = format_for_agent(
        AnalysisResult(
            competitor_count=12,
            digital_score=4,
            opportunity=OpportunityLevel.HIGH,
            insights=["Mercado competitivo"],
            recommendations=["Automatizar comunicação com membros"],
        )
    )

    assert text.startswith("📊 *ANÁLISE DE MERCADO DA REGIÃO*")
    assert "🏛️ Igrejas na região: 12" in text
    assert "📱 Score digital: 4/10" in text
    assert "🟢 Oportunidade: Alta" in text
    assert "• Mercado competitivo" in text
    assert text.endswith("• Automatizar comunicação com membros")
