from __future__ import annotations

import dataclasses

import pytest
import requests

from salesflow.core.exceptions import CompletionError
from salesflow.services.completion_client import ChatMessage, CompletionClient

from tests.fakes import SleepRecorder


class _Response:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)

    def json(self):
        if self._body is None:
            raise ValueError("no json body")
        return self._body


class _Session:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _ok(content="pricing", tokens=17):
    return _Response(
        body={
            "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
            "usage": {"total_tokens": tokens},
        }
    )


@pytest.fixture
def client_config(config):
    return dataclasses.replace(
        config,
        COMPLETION_API_URL="https://llm.test/v1",
        COMPLETION_API_KEY="sk-test",
        COMPLETION_MODEL="kimi-k2-5",
        COMPLETION_MAX_RETRIES=1,
        COMPLETION_MIN_INTERVAL_SECONDS=0,
    )


def test_successful_completion_request_shape(client_config):
    session = _Session(_ok("Graça e Paz!", tokens=88))
    client = CompletionClient(client_config, session=session, sleep=SleepRecorder())

    result = client.prompt("sistema", "Oi", temperature=0.1, max_tokens=20)

    assert result.content == "Graça e Paz!"
    assert result.tokens_used == 88
    assert result.finish_reason == "stop"
    sent = session.requests[0]
    assert sent["url"] == "https://llm.test/v1/chat/completions"
    assert sent["headers"]["Authorization"] == "Bearer sk-test"
    assert sent["json"] == {
        "model": "kimi-k2-5",
        "messages": [{"role": "system", "content": "sistema"}, {"role": "user", "content": "Oi"}],
        "temperature": 0.1,
        "max_tokens": 20,
    }


def test_transient_failure_is_retried_once(client_config):
    sleeper = SleepRecorder()
    session = _Session(requests.ConnectionError("reset by peer"), _ok())
    client = CompletionClient(client_config, session=session, sleep=sleeper)

    result = client.complete([ChatMessage("user", "Oi")])

    assert result.content == "pricing"
    assert len(session.requests) == 2
    assert sleeper.calls == [2]


def test_exhausted_retries_raise_completion_error(client_config):
    session = _Session(_Response(status_code=503), _Response(status_code=500))
    client = CompletionClient(client_config, session=session, sleep=SleepRecorder())

    with pytest.raises(CompletionError):
        client.complete([ChatMessage("user", "Oi")])
    assert len(session.requests) == 2


def test_response_without_choices_is_an_error(client_config):
    session = _Session(_Response(body={"choices": []}), _Response(body={"unexpected": True}))
    client = CompletionClient(client_config, session=session, sleep=SleepRecorder())

    with pytest.raises(CompletionError):
        client.complete([ChatMessage("user", "Oi")])


def test_missing_usage_counts_zero_tokens(client_config):
    session = _Session(_Response(body={"choices": [{"message": {"content": "ok"}}]}))
    client = CompletionClient(client_config, session=session, sleep=SleepRecorder())

    assert client.complete([ChatMessage("user", "Oi")]).tokens_used == 0


def test_minimum_interval_between_requests(client_config):
    sleeper = SleepRecorder()
    throttled = dataclasses.replace(client_config, COMPLETION_MIN_INTERVAL_SECONDS=60)
    client = CompletionClient(throttled, session=_Session(_ok(), _ok()), sleep=sleeper)

    client.complete([ChatMessage("user", "1")])
    client.complete([ChatMessage("user", "2")])

    assert 59 < sleeper.calls[-1] <= 60
