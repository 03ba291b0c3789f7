"""Regional market analysis for a lead's church, cached per lead."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

from sqlalchemy.orm import Session

from salesflow.core.enums import MARKET_ANALYSIS_TYPE, OpportunityLevel
from salesflow.database.models import Lead, MarketAnalysis
from salesflow.services.base_service import BaseService

logger = logging.getLogger(__name__)

SCORER_VERSION = "1.0-heuristic"


@dataclass(frozen=True)
class AnalysisResult:
    competitor_count: int
    digital_score: int
    opportunity: OpportunityLevel
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def fallback_analysis() -> AnalysisResult:
    return AnalysisResult(
        competitor_count=5,
        digital_score=3,
        opportunity=OpportunityLevel.MEDIUM,
        insights=["Análise em processamento"],
        recommendations=["Aguarde mais informações"],
    )


class RegionScorer(Protocol):
    def __call__(self, address: str | None, instagram: str | None) -> AnalysisResult: ...


class HeuristicRegionScorer:
    """Keyword-based estimate until a places/social data source is wired in."""

    BIG_CITIES = ("são paulo", "sao paulo", "rio de janeiro")
    MID_CITIES = ("belo horizonte", "salvador")
    RURAL = ("interior", "zona rural")

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def __call__(self, address: str | None, instagram: str | None) -> AnalysisResult:
        competitors = 5
        opportunity = OpportunityLevel.MEDIUM

        if address:
            lowered = address.lower()
            if any(city in lowered for city in self.BIG_CITIES):
                competitors = self._rng.randint(8, 17)
                opportunity = OpportunityLevel.HIGH
            elif any(city in lowered for city in self.MID_CITIES):
                competitors = self._rng.randint(5, 10)
                opportunity = OpportunityLevel.HIGH
            elif any(token in lowered for token in self.RURAL):
                competitors = self._rng.randint(1, 3)
            else:
                competitors = self._rng.randint(3, 7)

        digital_score = self._rng.randint(4, 7) if instagram else self._rng.randint(1, 3)

        insights: list[str] = []
        recommendations: list[str] = []
        if competitors > 7:
            insights.append(f"Região com alta densidade de igrejas ({competitors} identificadas)")
            insights.append("Mercado competitivo requer diferenciação digital")
        elif competitors < 4:
            insights.append(f"Região com baixa concorrência (apenas {competitors} igrejas identificadas)")
            insights.append("Oportunidade de se tornar referência digital na região")
        else:
            insights.append(f"Região com concorrência moderada ({competitors} igrejas)")

        if digital_score < 4:
            insights.append("Presença digital atual é limitada")
            recommendations.append("Criar perfis profissionais nas redes sociais")
            recommendations.append("Desenvolver estratégia de conteúdo digital")
        elif digital_score >= 7:
            insights.append("Boa presença digital já estabelecida")
            recommendations.append("Potencializar engajamento com ferramentas de gestão")
        else:
            insights.append("Presença digital em desenvolvimento")
            recommendations.append("Fortalecer comunicação com membros via app")

        recommendations.append("Implementar sistema de gestão integrado")
        recommendations.append("Automatizar comunicação com membros")
        if opportunity is OpportunityLevel.HIGH:
            recommendations.append("Aproveitar momento para expansão digital")

        return AnalysisResult(
            competitor_count=competitors,
            digital_score=max(0, min(digital_score, 10)),
            opportunity=opportunity,
            insights=insights,
            recommendations=recommendations,
        )


def should_trigger_analysis(prior_metadata: Mapping[str, Any], new_data: Mapping[str, Any]) -> bool:
    """True only the first time an address or Instagram handle is collected."""
    new_address = bool(new_data.get("address")) and not prior_metadata.get("address")
    new_instagram = bool(new_data.get("instagram")) and not prior_metadata.get("instagram")
    return new_address or new_instagram


_OPPORTUNITY_LABELS = {
    OpportunityLevel.LOW: ("🟡", "Baixa"),
    OpportunityLevel.MEDIUM: ("🟠", "Média"),
    OpportunityLevel.HIGH: ("🟢", "Alta"),
}


def format_for_agent(analysis: AnalysisResult) -> str:
    emoji, label = _OPPORTUNITY_LABELS[analysis.opportunity]
    lines = [
        "📊 *ANÁLISE DE MERCADO DA REGIÃO*",
        "",
        f"🏛️ Igrejas na região: {analysis.competitor_count}",
        f"📱 Score digital: {analysis.digital_score}/10",
        f"{emoji} Oportunidade: {label}",
        "",
        "*Insights:*",
        *(f"• {item}" for item in analysis.insights),
        "",
        "*Recomendações:*",
        *(f"• {item}" for item in analysis.recommendations),
    ]
    return "\n".join(lines)


def _to_result(row: MarketAnalysis) -> AnalysisResult:
    raw = row.raw_data or {}
    try:
        opportunity = OpportunityLevel(row.opportunity)
    except ValueError:
        opportunity = OpportunityLevel.MEDIUM
    return AnalysisResult(
        competitor_count=row.competitor_count,
        digital_score=row.digital_score,
        opportunity=opportunity,
        insights=list(raw.get("insights") or []),
        recommendations=list(raw.get("recommendations") or []),
    )


class MarketAnalysisService(BaseService):
    def __init__(
        self,
        db: Session,
        ttl_hours: int = 24,
        clock: Callable[[], datetime] | None = None,
        scorer: RegionScorer | None = None,
    ) -> None:
        super().__init__(db)
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._scorer = scorer or HeuristicRegionScorer()

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc).replace(tzinfo=None)

    def get_active(self, lead_id: int) -> MarketAnalysis | None:
        return (
            self.db.query(MarketAnalysis)
            .filter(
                MarketAnalysis.lead_id == lead_id,
                MarketAnalysis.analysis_type == MARKET_ANALYSIS_TYPE,
                MarketAnalysis.is_active.is_(True),
            )
            .order_by(MarketAnalysis.created_at.desc(), MarketAnalysis.id.desc())
            .first()
        )

    def cached_result(self, lead_id: int) -> AnalysisResult | None:
        """Latest active analysis for prompt injection, regardless of age."""
        row = self.get_active(lead_id)
        return _to_result(row) if row is not None else None

    def analyze(self, lead: Lead, address: str | None, instagram: str | None) -> AnalysisResult:
        """Reuse a fresh analysis or generate and persist a new one. Never raises."""
        lead_id = lead.id
        try:
            existing = self.get_active(lead_id)
            if existing is not None and self._now() - existing.created_at < self.ttl:
                logger.info(
                    "market_analysis.reused",
                    extra={"event": "market_analysis.reused", "lead_id": lead_id, "analysis_id": existing.id},
                )
                return _to_result(existing)

            result = self._scorer(address, instagram)
            now = self._now()
            if existing is not None:
                existing.is_active = False
            row = MarketAnalysis(
                lead_id=lead_id,
                analysis_type=MARKET_ANALYSIS_TYPE,
                address=address,
                instagram=instagram,
                competitor_count=result.competitor_count,
                digital_score=result.digital_score,
                opportunity=result.opportunity.value,
                raw_data={
                    "insights": result.insights,
                    "recommendations": result.recommendations,
                    "generated_at": now.isoformat(),
                    "version": SCORER_VERSION,
                },
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self.db.add(row)
            self.commit()
            logger.info(
                "market_analysis.generated",
                extra={
                    "event": "market_analysis.generated",
                    "lead_id": lead_id,
                    "competitor_count": result.competitor_count,
                    "digital_score": result.digital_score,
                    "opportunity": result.opportunity.value,
                },
            )
            return result
        except Exception as exc:
            self.rollback()
            logger.exception(
                "market_analysis.failed",
                extra={"event": "market_analysis.failed", "lead_id": lead_id, "error": str(exc)},
            )
            return fallback_analysis()
