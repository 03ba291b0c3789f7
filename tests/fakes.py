"""Scripted stand-ins for the external completion and messaging APIs."""

from __future__ import annotations

from datetime import datetime, timezone

from salesflow.agents.prompts import EXTRACTION_PROMPT, INTENT_CLASSIFIER_PROMPT, SUMMARY_PROMPT
from salesflow.core.exceptions import CompletionError, MessagingError
from salesflow.services.completion_client import ChatMessage, CompletionResult
from salesflow.services.messaging_client import ConnectionStatus, SendResult

# Tuesday 09:00 and Saturday 10:00 at UTC-3.
BUSINESS_OPEN = datetime(2026, 10, 20, 12, 0, tzinfo=timezone.utc)
BUSINESS_CLOSED = datetime(2026, 10, 17, 13, 0, tzinfo=timezone.utc)


class FakeCompletionClient:
    """Answers by call kind, recognised from the system prompt."""

    def __init__(self) -> None:
        self.intent = "greeting"
        self.extraction = "{}"
        self.summary = '{"summary": "Pastor quer conhecer os planos.", "key_points": ["preço"]}'
        self.reply = "Graça e Paz, Pastor! Posso fazer uma análise rápida da sua região?"
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    @staticmethod
    def _kind(messages: list[ChatMessage]) -> str:
        system = messages[0].content if messages else ""
        if system == INTENT_CLASSIFIER_PROMPT:
            return "intent"
        if system == EXTRACTION_PROMPT:
            return "extraction"
        if system == SUMMARY_PROMPT:
            return "summary"
        return "reply"

    def complete(self, messages, temperature: float = 0.7, max_tokens: int = 1000) -> CompletionResult:
        messages = list(messages)
        kind = self._kind(messages)
        self.calls.append((kind, messages))
        if kind in self.fail_on:
            raise CompletionError(f"scripted {kind} failure")
        content = {
            "intent": self.intent,
            "extraction": self.extraction,
            "summary": self.summary,
            "reply": self.reply,
        }[kind]
        return CompletionResult(content=content, tokens_used=42, finish_reason="stop")

    def prompt(self, system: str, user: str, temperature: float = 0.7, max_tokens: int = 1000) -> CompletionResult:
        return self.complete([ChatMessage("system", system), ChatMessage("user", user)], temperature, max_tokens)

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]

    def last(self, kind: str) -> list[ChatMessage]:
        return [messages for call_kind, messages in self.calls if call_kind == kind][-1]


class FakeMessagingClient:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.presence: list[tuple[str, str]] = []
        self.send_success = True
        self.fail_typing = False

    def send_text(self, phone: str, text: str) -> SendResult:
        self.sent.append((phone, text))
        if not self.send_success:
            return SendResult(success=False, error="HTTP 500: boom")
        return SendResult(success=True, message_id=f"out-{len(self.sent)}")

    def send_typing_indicator(self, phone: str) -> None:
        if self.fail_typing:
            raise MessagingError("presence composing failed")
        self.presence.append((phone, "composing"))

    def clear_typing_indicator(self, phone: str) -> None:
        if self.fail_typing:
            raise MessagingError("presence paused failed")
        self.presence.append((phone, "paused"))

    def check_connection(self) -> ConnectionStatus:
        return ConnectionStatus(connected=True, instance="test", state="open")


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
