"""Adapter for an OpenAI-compatible chat-completion API."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from time import perf_counter
from typing import Literal

import requests

from salesflow.core.config import Config
from salesflow.core.exceptions import CompletionError

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CompletionResult:
    content: str
    tokens_used: int
    finish_reason: str | None = None
    latency_ms: int = 0


class CompletionClient:
    """Blocking client with a minimum request interval and bounded retries."""

    def __init__(
        self,
        config: Config,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = config.COMPLETION_API_URL
        self.api_key = config.COMPLETION_API_KEY
        self.model = config.COMPLETION_MODEL
        self.timeout = config.COMPLETION_TIMEOUT_SECONDS
        self.max_retries = config.COMPLETION_MAX_RETRIES
        self.min_interval = config.COMPLETION_MIN_INTERVAL_SECONDS
        self.session = session or requests.Session()
        self._sleep = sleep
        self._rate_lock = threading.Lock()
        self._last_request_ts = 0.0

    def _apply_rate_limit(self) -> None:
        if self.min_interval <= 0:
            return
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_ts
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
            self._last_request_ts = time.monotonic()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> CompletionResult:
        payload = {
            "model": self.model,
            "messages": [message.as_dict() for message in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        url = f"{self.base_url}/chat/completions"
        total_attempts = self.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, total_attempts + 1):
            started = perf_counter()
            try:
                self._apply_rate_limit()
                response = self.session.post(
                    url,
                    json=payload,
                    headers=self._headers(),
                    timeout=(5, self.timeout),
                )
                response.raise_for_status()
                result = self._parse(response.json())
            except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as exc:
                last_error = exc
                logger.warning(
                    "completion.call.failed",
                    extra={
                        "event": "completion.call.failed",
                        "attempt": attempt,
                        "attempts_total": total_attempts,
                        "latency_ms": int((perf_counter() - started) * 1000),
                        "error": str(exc),
                    },
                )
                if attempt < total_attempts:
                    self._sleep(min(2 * attempt, 5))
                continue

            latency_ms = int((perf_counter() - started) * 1000)
            logger.info(
                "completion.call.succeeded",
                extra={
                    "event": "completion.call.succeeded",
                    "model": self.model,
                    "tokens_used": result.tokens_used,
                    "latency_ms": latency_ms,
                },
            )
            return CompletionResult(
                content=result.content,
                tokens_used=result.tokens_used,
                finish_reason=result.finish_reason,
                latency_ms=latency_ms,
            )

        logger.error(
            "completion.call.unavailable",
            extra={
                "event": "completion.call.unavailable",
                "url": url,
                "model": self.model,
                "error": str(last_error) if last_error else "unknown",
            },
        )
        raise CompletionError(f"completion API unavailable: {last_error}") from last_error

    @staticmethod
    def _parse(body: dict) -> CompletionResult:
        choices = body.get("choices") or []
        if not choices:
            raise ValueError("completion response has no choices")
        choice = choices[0]
        content = (choice.get("message") or {}).get("content") or ""
        usage = body.get("usage") or {}
        return CompletionResult(
            content=content,
            tokens_used=int(usage.get("total_tokens") or 0),
            finish_reason=choice.get("finish_reason"),
        )

    def prompt(
        self,
        system: str,
        user: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> CompletionResult:
        """Single system + user turn."""
        return self.complete(
            [ChatMessage("system", system), ChatMessage("user", user)],
            temperature=temperature,
            max_tokens=max_tokens,
        )
