from __future__ import annotations

import httpx
import pytest

from medwise_ai import AIResult, GeminiGateway, ProviderError, clean_json_response, parse_json_object
from medwise_ai.gateway import classify_provider_failure


def _gateway(sleeps: list[float], **kwargs) -> GeminiGateway:
    return GeminiGateway(
        api_key=kwargs.pop("api_key", "test-key"),
        model="gemini-test",
        base_url="https://example.invalid/v1beta/",
        sleep=sleeps.append,
        **kwargs,
    )


def test_quota_errors_retry_three_times_with_doubling_backoff(monkeypatch):
    sleeps: list[float] = []
    gateway = _gateway(sleeps)
    calls: list[str] = []

    def always_quota(prompt: str) -> str:
        calls.append(prompt)
        raise ProviderError("quota", "Resource has been exhausted (e.g. check quota).", 429)

    monkeypatch.setattr(gateway, "_call", always_quota)
    result = gateway.generate("hello")

    assert result.ok is False
    assert result.failure == "quota"
    assert result.attempts == 4
    assert len(calls) == 4
    assert sleeps == [2.0, 4.0, 8.0]


def test_quota_then_success_stops_retrying(monkeypatch):
    sleeps: list[float] = []
    gateway = _gateway(sleeps)
    outcomes = iter([ProviderError("quota", "429", 429), "final answer"])

    def flaky(prompt: str) -> str:
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(gateway, "_call", flaky)
    result = gateway.generate("hello")

    assert result.ok is True
    assert result.text == "final answer"
    assert result.attempts == 2
    assert sleeps == [2.0]


@pytest.mark.parametrize("failure", ["invalid_credential", "network", "provider_error"])
def test_other_failures_are_not_retried(monkeypatch, failure):
    sleeps: list[float] = []
    gateway = _gateway(sleeps)

    def fail(prompt: str) -> str:
        raise ProviderError(failure, "nope")

    monkeypatch.setattr(gateway, "_call", fail)
    result = gateway.generate("hello")
    assert result.failure == failure
    assert result.attempts == 1
    assert sleeps == []


def test_unconfigured_gateway_never_calls_provider(monkeypatch):
    gateway = _gateway([], api_key="")

    def explode(prompt: str) -> str:
        raise AssertionError("provider must not be called")

    monkeypatch.setattr(gateway, "_call", explode)
    result = gateway.generate("hello")
    assert result.failure == "unconfigured"
    assert result.attempts == 0


def test_empty_answer_is_a_failure(monkeypatch):
    gateway = _gateway([])
    monkeypatch.setattr(gateway, "_call", lambda prompt: "")
    assert gateway.generate("hello").failure == "empty"


def test_call_posts_generate_content_and_reads_candidate_text(monkeypatch):
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["key"] = request.headers.get("x-goog-api-key")
        captured["body"] = request.read()
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "part one "}, {"text": "part two"}]}}]},
        )

    real_client = httpx.Client

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "Client", client_factory)
    result = _gateway([]).generate("Describe aspirin")

    assert result.ok is True
    assert result.text == "part one part two"
    assert captured["url"] == "https://example.invalid/v1beta/models/gemini-test:generateContent"
    assert captured["key"] == "test-key"
    assert b"Describe aspirin" in captured["body"]


def test_http_429_is_classified_as_quota(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "Quota exceeded for metric"}})

    real_client = httpx.Client

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "Client", client_factory)
    sleeps: list[float] = []
    result = _gateway(sleeps).generate("hi")
    assert result.failure == "quota"
    assert result.detail == "Quota exceeded for metric"
    assert sleeps == [2.0, 4.0, 8.0]


def test_classify_provider_failure():
    assert classify_provider_failure(429, "slow down") == "quota"
    assert classify_provider_failure(400, "RESOURCE_EXHAUSTED") == "quota"
    assert classify_provider_failure(400, "API key not valid. Please pass a valid API key.") == "invalid_credential"
    assert classify_provider_failure(403, "forbidden") == "invalid_credential"
    assert classify_provider_failure(500, "internal") == "provider_error"


def test_clean_json_response_strips_fences():
    assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_json_response('```{"a": 1}```') == '{"a": 1}'
    assert clean_json_response("  plain  ") == "plain"


def test_parse_json_object_finds_embedded_object():
    assert parse_json_object('Here you go: {"summary": "ok", "nested": {"x": [1, 2]}} thanks') == {
        "summary": "ok",
        "nested": {"x": [1, 2]},
    }
    assert parse_json_object("[1, 2, 3]") is None
    assert parse_json_object("no json here") is None
    assert parse_json_object("") is None


def test_failed_result_only_accepts_known_reasons():
    assert AIResult.failed("quota").failure == "quota"
    with pytest.raises(ValueError):
        AIResult.failed("teapot")
