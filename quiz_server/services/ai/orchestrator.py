"""Failover across several generative backends.

Adapters are tried in a fixed preference order starting from the adapter
that last worked. A rate-limited adapter hands over to the next one; any
other failure is raised straight away.
"""

from threading import Lock
from time import perf_counter
from typing import Callable, Dict, List, Optional, Sequence, TypeVar
import logging
import os

from quiz_server.errors import AllProvidersExhausted, RateLimited
from quiz_server.services.ai.adapters import AIProviderAdapter, MockAIAdapter, PROVIDER_CLASSES
from quiz_server.services.ai.parsing import AnswerValidation, GeneratedQuestion
from quiz_server.services.observability import telemetry
from quiz_server.utils.env import env_flag

logger = logging.getLogger("ai_orchestrator")

T = TypeVar("T")


class AIOrchestrator:
    def __init__(self, adapters: Sequence[AIProviderAdapter]):
        self.adapters: List[AIProviderAdapter] = list(adapters)
        self._index = 0
        self._lock = Lock()
        self.last_errors: Dict[str, str] = {}
        self.had_failover = False

    def __len__(self) -> int:
        return len(self.adapters)

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._index

    @property
    def active_provider_name(self) -> str:
        if not self.adapters:
            return "none"
        return self.adapters[self.current_index].name

    def available_providers(self) -> List[Dict[str, object]]:
        active = self.current_index
        return [
            {"name": a.name, "position": i, "active": i == active}
            for i, a in enumerate(self.adapters)
        ]

    def prefer(self, name: str) -> bool:
        """Move the named provider to the front. Returns False if it isn't configured."""
        with self._lock:
            for i, adapter in enumerate(self.adapters):
                if adapter.name == name:
                    self.adapters.insert(0, self.adapters.pop(i))
                    self._index = 0
                    return True
        logger.warning("Preferred AI provider %r is not configured; keeping default order", name)
        return False

    def _rotate_from(self, tried: int) -> None:
        with self._lock:
            # Another caller may already have moved past this adapter.
            if self._index == tried:
                self._index = (tried + 1) % len(self.adapters)
            logger.info("Rotating AI provider to index %d (%s)", self._index, self.adapters[self._index].name)

    def _call_with_failover(self, operation: str, call: Callable[[AIProviderAdapter], T]) -> T:
        if not self.adapters:
            raise AllProvidersExhausted({})

        errors: Dict[str, str] = {}
        start_index = self.current_index
        for _ in range(len(self.adapters)):
            idx = self.current_index
            adapter = self.adapters[idx]
            telemetry.record(adapter.name, "attempts")
            try:
                result = call(adapter)
            except RateLimited as e:
                telemetry.record(adapter.name, "rate_limited")
                errors[adapter.name] = str(e)
                logger.warning("Provider %s rate limited during %s: %s", adapter.name, operation, e)
                self._rotate_from(idx)
                continue
            except Exception:
                telemetry.record(adapter.name, "errors")
                self.last_errors = errors
                raise
            telemetry.record(adapter.name, "successes")
            self.had_failover = idx != start_index
            if self.had_failover:
                telemetry.record_failover(operation, self.adapters[start_index].name, adapter.name)
            self.last_errors = errors
            return result

        self.last_errors = errors
        self.had_failover = False
        raise AllProvidersExhausted(errors)

    def generate(self, topic: str, difficulty: int) -> GeneratedQuestion:
        started = perf_counter()
        try:
            return self._call_with_failover("generate", lambda a: a.generate(topic, difficulty))
        finally:
            telemetry.observe_generation_ms((perf_counter() - started) * 1000.0)

    def validate_answer(self, question: str, answer: str) -> AnswerValidation:
        return self._call_with_failover("validate_answer", lambda a: a.validate_answer(question, answer))


def build_orchestrator_from_env() -> AIOrchestrator:
    adapters: List[AIProviderAdapter] = []
    for name, cls in PROVIDER_CLASSES.items():
        prefix = name.upper()
        key = (os.getenv(f"{prefix}_API_KEY") or "").strip()
        if env_flag(f"{prefix}_ENABLED") and key:
            adapters.append(cls(key=key, model=os.getenv(f"{prefix}_MODEL") or None))
    if env_flag("MOCK_AI_ENABLED"):
        adapters.append(MockAIAdapter())

    orch = AIOrchestrator(adapters)
    preferred = (os.getenv("AI_PREFERRED_PROVIDER") or "auto").strip().lower()
    if preferred != "auto":
        orch.prefer(preferred)
    logger.info("AI providers configured: %s", [a.name for a in orch.adapters] or "none")
    return orch


_orchestrator: Optional[AIOrchestrator] = None
_orchestrator_lock = Lock()


def get_orchestrator() -> AIOrchestrator:
    """Process-wide orchestrator, built from the environment on first use."""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator_from_env()
        return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    with _orchestrator_lock:
        _orchestrator = None
