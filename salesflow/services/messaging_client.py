"""WhatsApp delivery through an Evolution-style HTTP API."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any

import requests

from salesflow.core.config import Config
from salesflow.core.exceptions import MessagingError
from salesflow.utils.validators import normalize_phone

logger = logging.getLogger(__name__)

WHATSAPP_SUFFIX = "@s.whatsapp.net"


def format_phone(phone: str) -> str:
    if "@" in phone:
        return phone
    return f"{normalize_phone(phone)}{WHATSAPP_SUFFIX}"


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    instance: str
    state: str | None = None
    error: str | None = None


class MessagingClient:
    def __init__(self, config: Config, session: requests.Session | None = None) -> None:
        self.base_url = config.MESSAGING_API_URL
        self.api_key = config.MESSAGING_API_KEY
        self.instance = config.MESSAGING_INSTANCE
        self.session = session or requests.Session()
        self.timeout = 15

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        return self.session.request(
            method,
            f"{self.base_url}{path}",
            json=payload,
            headers=headers,
            timeout=(5, self.timeout),
        )

    def send_text(self, phone: str, text: str) -> SendResult:
        """Send a text message; failures are reported, never raised."""
        started = perf_counter()
        try:
            response = self._request(
                "POST",
                f"/message/sendText/{self.instance}",
                {"number": format_phone(phone), "text": text, "delay": 500},
            )
        except requests.exceptions.RequestException as exc:
            logger.error(
                "messaging.send.failed",
                extra={"event": "messaging.send.failed", "phone": phone, "error": str(exc)},
            )
            return SendResult(success=False, error=str(exc))

        latency_ms = int((perf_counter() - started) * 1000)
        if not response.ok:
            error = f"HTTP {response.status_code}: {response.text[:500]}"
            logger.error(
                "messaging.send.rejected",
                extra={
                    "event": "messaging.send.rejected",
                    "phone": phone,
                    "status_code": response.status_code,
                    "latency_ms": latency_ms,
                },
            )
            return SendResult(success=False, error=error)

        try:
            body = response.json()
        except ValueError:
            body = {}
        message_id = (body.get("key") or {}).get("id") if isinstance(body, dict) else None
        logger.info(
            "messaging.send.succeeded",
            extra={
                "event": "messaging.send.succeeded",
                "phone": phone,
                "message_id": message_id,
                "latency_ms": latency_ms,
            },
        )
        return SendResult(success=True, message_id=message_id)

    def _set_presence(self, phone: str, presence: str) -> None:
        try:
            response = self._request(
                "POST",
                f"/chat/presence/{self.instance}",
                {"number": format_phone(phone), "presence": presence},
            )
        except requests.exceptions.RequestException as exc:
            raise MessagingError(f"presence {presence} failed: {exc}") from exc
        if not response.ok:
            raise MessagingError(f"presence {presence} failed: HTTP {response.status_code}")

    def send_typing_indicator(self, phone: str) -> None:
        self._set_presence(phone, "composing")

    def clear_typing_indicator(self, phone: str) -> None:
        self._set_presence(phone, "paused")

    def check_connection(self) -> ConnectionStatus:
        try:
            response = self._request("GET", f"/instance/connectionState/{self.instance}")
        except requests.exceptions.RequestException as exc:
            return ConnectionStatus(connected=False, instance=self.instance, error=str(exc))
        if not response.ok:
            return ConnectionStatus(
                connected=False, instance=self.instance, error=f"HTTP {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        # Some API versions nest the state under "instance".
        state = body.get("state") or (body.get("instance") or {}).get("state")
        return ConnectionStatus(connected=state == "open", instance=self.instance, state=state)


class HumanizedSender:
    """Paces outbound replies so they read like a person typing."""

    def __init__(
        self,
        client: MessagingClient,
        config: Config,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.ms_per_char = config.TYPING_MS_PER_CHAR
        self.typing_max_seconds = config.TYPING_MAX_SECONDS
        self.delay_min = config.HUMANIZED_DELAY_MIN_SECONDS
        self.delay_max = config.HUMANIZED_DELAY_MAX_SECONDS
        self._sleep = sleep
        self._rng = rng or random.Random()

    def typing_seconds(self, text: str) -> float:
        return min(len(text) * self.ms_per_char / 1000.0, self.typing_max_seconds)

    def deliver(self, phone: str, text: str) -> SendResult:
        try:
            self.client.send_typing_indicator(phone)
        except MessagingError as exc:
            logger.warning(
                "messaging.typing.failed",
                extra={"event": "messaging.typing.failed", "phone": phone, "error": str(exc)},
            )

        self._sleep(self.typing_seconds(text))
        self._sleep(self._rng.uniform(self.delay_min, self.delay_max))
        result = self.client.send_text(phone, text)

        try:
            self.client.clear_typing_indicator(phone)
        except MessagingError as exc:
            logger.debug(
                "messaging.typing.clear_failed",
                extra={"event": "messaging.typing.clear_failed", "phone": phone, "error": str(exc)},
            )
        return result
