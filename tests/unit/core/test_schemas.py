from __future__ import annotations

import pytest

from salesflow.core.enums import AgentType, IntentType
from salesflow.core.schemas import (
    ExtractedLeadInfo,
    InboundMessageJob,
    SummaryResult,
    Unrecognized,
    WebhookMessage,
    decode_webhook,
    parse_schema,
)


def _payload(message: dict | None, from_me: bool = False, **data) -> dict:
    body = {
        "event": "messages.upsert",
        "instance": "salesflow",
        "data": {
            "key": {"remoteJid": "5511999990001@s.whatsapp.net", "fromMe": from_me, "id": "abc-1"},
            "message": message,
            "messageTimestamp": 1760965200,
            "pushName": "Pastor João",
            **data,
        },
    }
    return body


def test_decode_plain_conversation():
    decoded = decode_webhook(_payload({"conversation": "Quero saber o preço"}))

    assert isinstance(decoded, WebhookMessage)
    assert decoded.phone == "5511999990001"
    assert decoded.text == "Quero saber o preço"
    assert decoded.message_id == "abc-1"
    assert decoded.push_name == "Pastor João"
    assert decoded.timestamp == 1760965200
    assert decoded.from_me is False


@pytest.mark.parametrize(
    "message, expected",
    [
        ({"extendedTextMessage": {"text": "link aqui"}}, "link aqui"),
        ({"imageMessage": {"caption": "foto da igreja"}}, "foto da igreja"),
        ({"videoMessage": {"caption": "culto"}}, "culto"),
        ({"buttonsResponseMessage": {"selectedDisplayText": "Plano anual"}}, "Plano anual"),
        ({"listResponseMessage": {"title": "Essencial"}}, "Essencial"),
        ({"conversation": "  ", "extendedTextMessage": {"text": "segundo"}}, "segundo"),
    ],
)
def test_decode_prefers_first_populated_text_field(message, expected):
    decoded = decode_webhook(_payload(message))
    assert isinstance(decoded, WebhookMessage)
    assert decoded.text == expected


def test_decode_without_text_keeps_message_with_empty_text():
    decoded = decode_webhook(_payload({"audioMessage": {"seconds": 3}}))
    assert isinstance(decoded, WebhookMessage)
    assert decoded.text is None


def test_decode_flags_own_messages():
    decoded = decode_webhook(_payload({"conversation": "oi"}, from_me=True))
    assert isinstance(decoded, WebhookMessage)
    assert decoded.from_me is True


@pytest.mark.parametrize(
    "raw",
    [None, [], {"event": "x"}, {"data": {"key": {"fromMe": False}}}, {"data": {"key": {"remoteJid": "abc", "id": "1"}}}],
)
def test_decode_unrecognized_shapes(raw):
    assert isinstance(decode_webhook(raw), Unrecognized)


def test_decode_string_timestamp_and_missing_timestamp():
    decoded = decode_webhook(_payload({"conversation": "oi"}, messageTimestamp="1760965200"))
    assert decoded.timestamp == 1760965200

    decoded = decode_webhook(_payload({"conversation": "oi"}, messageTimestamp=None), now=123.9)
    assert decoded.timestamp == 123


def test_inbound_job_accepts_camel_case_aliases():
    job = InboundMessageJob.model_validate(
        {"phone": "5511999990001", "message": "oi", "pushName": "Ana", "messageId": "m-1", "timestamp": 1}
    )
    assert job.push_name == "Ana"
    assert job.message_id == "m-1"
    assert job.to_payload() == {
        "phone": "5511999990001",
        "message": "oi",
        "push_name": "Ana",
        "message_id": "m-1",
        "timestamp": 1,
    }


def test_extracted_info_keeps_only_collected_fields():
    info = parse_schema(
        ExtractedLeadInfo,
        '```json\n{"address": "Rua A, 10", "congregation_size": "cerca de 150", "city": "", "foo": 1}\n```',
    )
    assert info.collected() == {"address": "Rua A, 10", "congregation_size": 150}


def test_summary_result_accepts_key_points_alias():
    parsed = parse_schema(SummaryResult, '{"summary": "ok", "keyPoints": ["a", "b"]}')
    assert parsed.key_points == ["a", "b"]
    with pytest.raises(ValueError):
        parse_schema(SummaryResult, "texto livre")


def test_agent_type_parse_collapses_closer_into_ae():
    assert AgentType.parse("closer") is AgentType.AE
    assert AgentType.parse("BDR") is AgentType.BDR
    assert AgentType.parse("mystery") is AgentType.SDR
    assert AgentType.parse(None) is AgentType.SDR


def test_intent_coerce_outside_closed_set_is_unknown():
    assert IntentType.coerce(" Pricing.") is IntentType.PRICING
    assert IntentType.coerce("'closing'") is IntentType.CLOSING
    assert IntentType.coerce("buy now") is IntentType.UNKNOWN
    assert IntentType.coerce("") is IntentType.UNKNOWN
