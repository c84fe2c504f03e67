import json

import pytest
import requests

from quiz_server.errors import AIProviderError, MalformedResponse, RateLimited
from quiz_server.services.ai.adapters import (
    DeepSeekAdapter,
    GeminiAdapter,
    GroqAdapter,
    MockAIAdapter,
    OpenAICompatibleAdapter,
    is_rate_limit_message,
)
from quiz_server.services.ai.prompts import build_generation_prompt


QUESTION = {
    "statement": "Which planet is known as the Red Planet?",
    "options": [
        {"text": "Mars", "is_correct": True},
        {"text": "Venus", "is_correct": False},
        {"text": "Jupiter", "is_correct": False},
        {"text": "Mercury", "is_correct": False},
    ],
    "explanation_correct": "Mars looks red because of iron oxide.",
    "explanation_incorrect": "The Red Planet is Mars.",
}


class _FakeResp:
    def __init__(self, payload=None, status=200, text=None):
        self._payload = payload
        self.status_code = status
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _chat_payload(content):
    return {"choices": [{"message": {"content": content}}]}


def _gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_openai_compatible_generates_question(monkeypatch):
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return _FakeResp(_chat_payload(json.dumps(QUESTION)))

    monkeypatch.setattr("quiz_server.services.ai.adapters.requests.post", fake_post)

    q = GroqAdapter(key="k").generate("Astronomy", 2)
    assert q.statement == QUESTION["statement"]
    assert q.provider == "groq"
    url, kwargs = calls[0]
    assert url == "https://api.groq.com/openai/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer k"
    assert kwargs["json"]["model"] == "llama-3.1-8b-instant"
    assert kwargs["json"]["response_format"] == {"type": "json_object"}
    assert "timeout" in kwargs


def test_openai_compatible_extracts_reasoning_when_content_empty(monkeypatch):
    payload = {"choices": [{"message": {"content": "", "reasoning": '{"isCorrect": true, "explanation": "ok"}'}}]}
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp(payload),
    )

    adapter = OpenAICompatibleAdapter(endpoint="https://example.com", key="k", model="m")
    out = adapter.validate_answer("2+2?", "4")
    assert out.is_correct is True


def test_openai_compatible_extracts_content_text_list(monkeypatch):
    payload = _chat_payload([{"type": "text", "text": '{"isCorrect": false,'}, {"type": "text", "text": '"explanation": "no"}'}])
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp(payload),
    )

    out = DeepSeekAdapter(key="k").validate_answer("2+2?", "5")
    assert out.is_correct is False
    assert out.explanation == "no"


def test_gemini_generates_question_with_fenced_reply(monkeypatch):
    calls = []
    reply = "```json\n" + json.dumps(QUESTION) + "\n```"

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return _FakeResp(_gemini_payload(reply))

    monkeypatch.setattr("quiz_server.services.ai.adapters.requests.post", fake_post)

    q = GeminiAdapter(key="g-key").generate("Astronomy", 4)
    assert q.correct_index == 0
    assert q.provider == "gemini"
    url, kwargs = calls[0]
    assert url.endswith("/models/gemini-2.0-flash:generateContent")
    assert kwargs["headers"]["x-goog-api-key"] == "g-key"
    assert "params" not in kwargs
    assert "g-key" not in url


def test_http_429_is_rate_limited(monkeypatch):
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp({"error": "slow down"}, status=429),
    )
    with pytest.raises(RateLimited) as exc:
        GroqAdapter(key="k").generate("Astronomy", 1)
    assert exc.value.provider == "groq"


def test_quota_message_in_error_body_is_rate_limited(monkeypatch):
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp({}, status=400, text='{"status": "RESOURCE_EXHAUSTED"}'),
    )
    with pytest.raises(RateLimited):
        GeminiAdapter(key="k").generate("Astronomy", 1)


def test_server_error_is_provider_error_not_rate_limit(monkeypatch):
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp({}, status=500, text="internal error"),
    )
    with pytest.raises(AIProviderError) as exc:
        GroqAdapter(key="k").generate("Astronomy", 1)
    assert not isinstance(exc.value, RateLimited)


def test_network_failure_is_provider_error(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr("quiz_server.services.ai.adapters.requests.post", boom)
    with pytest.raises(AIProviderError):
        GroqAdapter(key="k").generate("Astronomy", 1)


def test_unusable_reply_is_malformed(monkeypatch):
    bad = dict(QUESTION, options=QUESTION["options"][:2])
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp(_chat_payload(json.dumps(bad))),
    )
    with pytest.raises(MalformedResponse) as exc:
        GroqAdapter(key="k").generate("Astronomy", 1)
    assert exc.value.provider == "groq"


def test_non_json_body_is_malformed(monkeypatch):
    monkeypatch.setattr(
        "quiz_server.services.ai.adapters.requests.post",
        lambda *args, **kwargs: _FakeResp(ValueError("not json"), text="<html>"),
    )
    with pytest.raises(MalformedResponse):
        GroqAdapter(key="k").generate("Astronomy", 1)


def test_mock_adapter_returns_valid_question():
    q = MockAIAdapter().generate('History "of" Rome', 3)
    assert len(q.options) == 4
    assert sum(1 for o in q.options if o.is_correct) == 1
    assert q.explanation_correct and q.explanation_incorrect


def test_rate_limit_markers():
    assert is_rate_limit_message("Rate limit reached for model")
    assert is_rate_limit_message("You exceeded your current quota")
    assert not is_rate_limit_message("invalid api key")


def test_custom_prompt_template(monkeypatch):
    monkeypatch.setenv("AI_PROMPT_TEMPLATE", "Ask about {topic} at {difficulty} ({difficulty_desc}) as {\"json\": 1}")
    prompt = build_generation_prompt("Chemistry", 5)
    assert prompt.startswith("Ask about Chemistry at 5 (")
    assert prompt.endswith('{"json": 1}')
