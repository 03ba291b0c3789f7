"""Pydantic schemas for webhook payloads, queue jobs and completion output."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from salesflow.utils.validators import normalize_phone, sanitize_text, strip_code_fence


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MessageKey(_ProviderModel):
    remote_jid: str = Field(alias="remoteJid", min_length=1)
    from_me: bool = Field(default=False, alias="fromMe")
    id: str = Field(min_length=1)


class _ExtendedText(_ProviderModel):
    text: str | None = None


class _MediaCaption(_ProviderModel):
    caption: str | None = None


class _ButtonsResponse(_ProviderModel):
    selected_display_text: str | None = Field(default=None, alias="selectedDisplayText")


class _ListResponse(_ProviderModel):
    title: str | None = None


class MessageContent(_ProviderModel):
    conversation: str | None = None
    extended_text_message: _ExtendedText | None = Field(default=None, alias="extendedTextMessage")
    image_message: _MediaCaption | None = Field(default=None, alias="imageMessage")
    video_message: _MediaCaption | None = Field(default=None, alias="videoMessage")
    buttons_response_message: _ButtonsResponse | None = Field(default=None, alias="buttonsResponseMessage")
    list_response_message: _ListResponse | None = Field(default=None, alias="listResponseMessage")

    def first_text(self) -> str | None:
        """Return the first populated text field in provider preference order."""
        candidates = (
            self.conversation,
            self.extended_text_message.text if self.extended_text_message else None,
            self.image_message.caption if self.image_message else None,
            self.video_message.caption if self.video_message else None,
            self.buttons_response_message.selected_display_text if self.buttons_response_message else None,
            self.list_response_message.title if self.list_response_message else None,
        )
        for candidate in candidates:
            cleaned = sanitize_text(candidate)
            if cleaned:
                return cleaned
        return None


class WebhookData(_ProviderModel):
    key: MessageKey
    message: MessageContent | None = None
    message_timestamp: int | None = Field(default=None, alias="messageTimestamp")
    push_name: str | None = Field(default=None, alias="pushName")

    @field_validator("message_timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        if isinstance(value, dict):
            # Protobuf Long serialised as {"low": .., "high": ..}.
            return value.get("low")
        return value


class EvolutionWebhookPayload(_ProviderModel):
    event: str | None = None
    instance: str | None = None
    data: WebhookData


@dataclass(frozen=True)
class WebhookMessage:
    """A decoded provider message, before self-origin or text filtering."""

    message_id: str
    phone: str
    text: str | None
    from_me: bool
    push_name: str | None
    timestamp: int
    event: str | None = None
    instance: str | None = None


@dataclass(frozen=True)
class Unrecognized:
    """Payload that does not match any supported provider shape."""

    reason: str


DecodedWebhook = Union[WebhookMessage, Unrecognized]


def decode_webhook(raw: Any, now: float | None = None) -> DecodedWebhook:
    """Decode a raw webhook body into a tagged union."""
    if not isinstance(raw, dict):
        return Unrecognized(reason="payload is not a JSON object")
    try:
        payload = EvolutionWebhookPayload.model_validate(raw)
    except ValidationError as exc:
        return Unrecognized(reason=str(exc))

    data = payload.data
    phone = normalize_phone(data.key.remote_jid)
    if not phone:
        return Unrecognized(reason="sender identifier has no digits")
    timestamp = data.message_timestamp
    if timestamp is None:
        timestamp = int(now if now is not None else time.time())
    return WebhookMessage(
        message_id=data.key.id,
        phone=phone,
        text=data.message.first_text() if data.message else None,
        from_me=data.key.from_me,
        push_name=sanitize_text(data.push_name) or None,
        timestamp=timestamp,
        event=payload.event,
        instance=payload.instance,
    )


class InboundMessageJob(BaseModel):
    """Queue job payload; ``message_id`` is the idempotency key."""

    model_config = ConfigDict(populate_by_name=True)

    phone: str = Field(min_length=8, max_length=20, pattern=r"^\d+$")
    message: str = Field(min_length=1, max_length=20000)
    push_name: str | None = Field(default=None, validation_alias=AliasChoices("push_name", "pushName"))
    message_id: str = Field(min_length=1, validation_alias=AliasChoices("message_id", "messageId"))
    timestamp: int

    @classmethod
    def from_webhook(cls, decoded: WebhookMessage) -> "InboundMessageJob":
        return cls(
            phone=decoded.phone,
            message=decoded.text or "",
            push_name=decoded.push_name,
            message_id=decoded.message_id,
            timestamp=decoded.timestamp,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ExtractedLeadInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str | None = None
    instagram: str | None = None
    congregation_size: int | None = Field(default=None, ge=0)
    city: str | None = None
    state: str | None = None

    @field_validator("address", "instagram", "city", "state", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        cleaned = sanitize_text(str(value), max_len=500)
        return cleaned or None

    @field_validator("congregation_size", mode="before")
    @classmethod
    def coerce_size(cls, value: Any) -> Any:
        if isinstance(value, str):
            digits = "".join(ch for ch in value if ch.isdigit())
            return int(digits) if digits else None
        return value

    def collected(self) -> dict[str, Any]:
        """Only the fields the completion actually filled in."""
        return self.model_dump(exclude_none=True)


class SummaryResult(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    summary: str = Field(min_length=1)
    key_points: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_points", "keyPoints"),
    )


def parse_schema(model_cls: type[BaseModel], payload: str) -> BaseModel:
    """Validate a JSON completion (code fences allowed) against a Pydantic model."""
    try:
        return model_cls.model_validate_json(strip_code_fence(payload))
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
