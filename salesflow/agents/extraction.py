"""Intent classification and lead fact extraction via the completion API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from salesflow.agents.prompts import EXTRACTION_PROMPT, INTENT_CLASSIFIER_PROMPT
from salesflow.core.enums import IntentType
from salesflow.core.schemas import ExtractedLeadInfo, parse_schema
from salesflow.services.completion_client import CompletionClient

logger = logging.getLogger(__name__)


def classify_intent(completion: CompletionClient, message: str) -> IntentType:
    result = completion.prompt(INTENT_CLASSIFIER_PROMPT, message, temperature=0.1, max_tokens=20)
    intent = IntentType.coerce(result.content)
    if intent is IntentType.UNKNOWN and result.content.strip():
        logger.info(
            "agent.intent.coerced",
            extra={"event": "agent.intent.coerced", "raw_intent": result.content[:50]},
        )
    return intent


def extract_lead_info(completion: CompletionClient, message: str) -> dict[str, Any]:
    """Structured facts mentioned in ``message``; unparseable answers yield ``{}``."""
    result = completion.prompt(EXTRACTION_PROMPT, message, temperature=0.1, max_tokens=200)
    try:
        info = parse_schema(ExtractedLeadInfo, result.content)
    except ValueError:
        logger.info(
            "agent.extraction.discarded",
            extra={"event": "agent.extraction.discarded", "content_length": len(result.content)},
        )
        return {}
    return info.collected()


def merge_metadata(current: Mapping[str, Any] | None, extracted: Mapping[str, Any]) -> dict[str, Any]:
    """Add newly extracted keys; keys extracted again overwrite the stored value."""
    merged = dict(current or {})
    merged.update({key: value for key, value in extracted.items() if value is not None})
    return merged
