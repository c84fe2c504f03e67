"""Generative-AI provider adapters.

Every adapter exposes the same two operations, ``generate`` and
``validate_answer``, so the orchestrator can swap them freely. Transport
failures are classified into ``RateLimited`` (HTTP 429 or a throttling
message) and ``AIProviderError`` (everything else); unusable replies raise
``MalformedResponse``.
"""

from typing import List, Dict, Any, Optional
import logging
import requests

from quiz_server.errors import AIProviderError, MalformedResponse, RateLimited
from quiz_server.services.ai.parsing import (
    AnswerValidation,
    GeneratedQuestion,
    parse_answer_validation,
    parse_generated_question,
)
from quiz_server.services.ai.prompts import (
    SYSTEM_ROLE,
    VALIDATION_TEMPERATURE,
    build_generation_prompt,
    build_validation_prompt,
    generation_temperature,
)

logger = logging.getLogger("ai_adapters")

# (connect, read) seconds
REQUEST_TIMEOUT = (10, 30)

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "resource_exhausted", "quota", "too many requests")


def is_rate_limit_message(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def _post_json(provider: str, url: str, **kwargs) -> Dict[str, Any]:
    """POST to a provider and return the decoded JSON body, classifying failures."""
    try:
        resp = requests.post(url, timeout=REQUEST_TIMEOUT, **kwargs)
    except requests.exceptions.RequestException as e:
        if is_rate_limit_message(str(e)):
            raise RateLimited(f"{provider}: {e}", provider=provider) from e
        raise AIProviderError(f"{provider} request failed: {e}", provider=provider) from e

    if resp.status_code == 429:
        raise RateLimited(f"{provider} returned HTTP 429", provider=provider)
    if resp.status_code >= 400:
        body = (resp.text or "")[:500]
        if is_rate_limit_message(body):
            raise RateLimited(f"{provider} returned HTTP {resp.status_code}: {body}", provider=provider)
        raise AIProviderError(f"{provider} returned HTTP {resp.status_code}: {body}", provider=provider)

    try:
        data = resp.json()
    except ValueError as e:
        raise MalformedResponse(f"{provider} returned a non-JSON body", provider=provider) from e
    if not isinstance(data, dict):
        raise MalformedResponse(f"{provider} returned an unexpected payload", provider=provider)
    return data


class AIProviderAdapter:
    """Interface for generative backends."""

    name = "base"
    # Real providers must return both feedback texts.
    require_dual_explanations = True

    def generate(self, topic: str, difficulty: int) -> GeneratedQuestion:
        raise NotImplementedError()

    def validate_answer(self, question: str, answer: str) -> AnswerValidation:
        raise NotImplementedError()

    def _parse_question(self, text: str) -> GeneratedQuestion:
        try:
            return parse_generated_question(text, self.require_dual_explanations, provider=self.name)
        except MalformedResponse as e:
            e.provider = self.name
            logger.warning("%s returned an unusable question: %s", self.name, e)
            raise

    def _parse_validation(self, text: str) -> AnswerValidation:
        try:
            return parse_answer_validation(text, provider=self.name)
        except MalformedResponse as e:
            e.provider = self.name
            raise

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class MockAIAdapter(AIProviderAdapter):
    """Offline adapter for local development; always returns the same well-formed question."""

    name = "mock"

    def generate(self, topic: str, difficulty: int) -> GeneratedQuestion:
        text = (
            '{"statement": "Which of these is most closely associated with %s (level %d)?",'
            ' "options": [{"text": "The correct fact", "is_correct": true},'
            ' {"text": "A plausible distractor", "is_correct": false},'
            ' {"text": "Another distractor", "is_correct": false},'
            ' {"text": "An unrelated answer", "is_correct": false}],'
            ' "explanation_correct": "Well done, that is the documented fact.",'
            ' "explanation_incorrect": "The correct fact is the documented one.",'
            ' "source_ref": "mock"}'
        ) % (topic.replace('"', "'"), int(difficulty))
        return self._parse_question(text)

    def validate_answer(self, question: str, answer: str) -> AnswerValidation:
        return AnswerValidation(is_correct=bool(answer.strip()), explanation="Mock validation.", provider=self.name)


class GeminiAdapter(AIProviderAdapter):
    name = "gemini"

    default_model = "gemini-2.0-flash"
    default_endpoint = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, key: str, model: Optional[str] = None, endpoint: Optional[str] = None):
        self.key = key
        self.model = model or self.default_model
        self.endpoint = (endpoint or self.default_endpoint).rstrip("/")

    def _url(self) -> str:
        return f"{self.endpoint}/models/{self.model}:generateContent"

    def _extract_text(self, data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not isinstance(candidates, list) or not candidates:
            raise MalformedResponse("gemini reply has no candidates", provider=self.name)
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            raise MalformedResponse("gemini reply has no text parts", provider=self.name)
        return "".join(texts)

    def _complete(self, prompt: str, temperature: float, max_tokens: int) -> str:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": max_tokens,
            },
        }
        headers = {"x-goog-api-key": self.key, "Content-Type": "application/json"}
        data = _post_json(self.name, self._url(), headers=headers, json=payload)
        return self._extract_text(data)

    def generate(self, topic: str, difficulty: int) -> GeneratedQuestion:
        prompt = f"{SYSTEM_ROLE}\n\n{build_generation_prompt(topic, difficulty)}"
        return self._parse_question(self._complete(prompt, generation_temperature(), 2048))

    def validate_answer(self, question: str, answer: str) -> AnswerValidation:
        text = self._complete(build_validation_prompt(question, answer), VALIDATION_TEMPERATURE, 500)
        return self._parse_validation(text)


class OpenAICompatibleAdapter(AIProviderAdapter):
    """Adapter for OpenAI-compatible chat APIs (Groq, DeepSeek, Fireworks)."""

    name = "openai-compatible"
    default_endpoint = ""
    default_model = ""

    def __init__(self, key: str, model: Optional[str] = None, endpoint: Optional[str] = None):
        self.key = key
        self.model = model or self.default_model
        self.endpoint = (endpoint or self.default_endpoint).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }

    def _extract_text(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise MalformedResponse(f"{self.name} reply has no choices", provider=self.name)

        message = (choices[0] or {}).get("message") or {}
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
        if isinstance(content, list):
            parts: List[str] = []
            for item in content:
                if isinstance(item, dict):
                    txt = item.get("text")
                    if isinstance(txt, str) and txt.strip():
                        parts.append(txt.strip())
            if parts:
                return " ".join(parts)

        # Some reasoning-style models put the answer here.
        reasoning = message.get("reasoning")
        if isinstance(reasoning, str) and reasoning.strip():
            return reasoning.strip()

        raise MalformedResponse(f"{self.name} reply has no message content", provider=self.name)

    def _chat(self, messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        data = _post_json(self.name, f"{self.endpoint}/chat/completions", headers=self._headers(), json=payload)
        return self._extract_text(data)

    def generate(self, topic: str, difficulty: int) -> GeneratedQuestion:
        messages = [
            {"role": "system", "content": SYSTEM_ROLE},
            {"role": "user", "content": build_generation_prompt(topic, difficulty)},
        ]
        return self._parse_question(self._chat(messages, generation_temperature(), 2048))

    def validate_answer(self, question: str, answer: str) -> AnswerValidation:
        messages = [{"role": "user", "content": build_validation_prompt(question, answer)}]
        return self._parse_validation(self._chat(messages, VALIDATION_TEMPERATURE, 500))


class GroqAdapter(OpenAICompatibleAdapter):
    name = "groq"
    default_endpoint = "https://api.groq.com/openai/v1"
    default_model = "llama-3.1-8b-instant"


class DeepSeekAdapter(OpenAICompatibleAdapter):
    name = "deepseek"
    default_endpoint = "https://api.deepseek.com/v1"
    default_model = "deepseek-chat"


class FireworksAdapter(OpenAICompatibleAdapter):
    name = "fireworks"
    default_endpoint = "https://api.fireworks.ai/inference/v1"
    default_model = "accounts/fireworks/models/llama-v3p1-8b-instruct"


# Fixed preference order used when building from the environment.
PROVIDER_CLASSES = {
    "gemini": GeminiAdapter,
    "groq": GroqAdapter,
    "deepseek": DeepSeekAdapter,
    "fireworks": FireworksAdapter,
}
