from collections import deque
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict

_OUTCOMES = ("attempts", "successes", "rate_limited", "errors")


class ProviderTelemetry:
    """Process-local counters for AI provider calls and failovers."""

    def __init__(self, max_failovers: int = 100):
        self._lock = Lock()
        self._providers: Dict[str, Dict[str, int]] = {}
        self._latency: Dict[str, float] = {}
        self._failovers: Deque[Dict[str, Any]] = deque(maxlen=max_failovers)
        self._fallbacks: Dict[str, int] = {}

    def record(self, provider: str, outcome: str) -> None:
        if outcome not in _OUTCOMES:
            raise ValueError(f"unknown outcome {outcome!r}")
        with self._lock:
            stats = self._providers.setdefault(provider, {k: 0 for k in _OUTCOMES})
            stats[outcome] += 1

    def observe_generation_ms(self, value_ms: float) -> None:
        val = float(value_ms)
        with self._lock:
            if not self._latency:
                self._latency = {"count": 1, "sum_ms": val, "max_ms": val}
                return
            self._latency["count"] += 1
            self._latency["sum_ms"] += val
            self._latency["max_ms"] = max(self._latency["max_ms"], val)

    def record_failover(self, operation: str, from_provider: str, to_provider: str) -> None:
        with self._lock:
            self._failovers.append({
                "ts": datetime.now(timezone.utc).isoformat(),
                "operation": operation,
                "from": from_provider,
                "to": to_provider,
            })

    def record_question_fallback(self, reason: str) -> None:
        """Count next-question lookups that ended without a question."""
        with self._lock:
            self._fallbacks[reason] = self._fallbacks.get(reason, 0) + 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            latency = {}
            if self._latency:
                count = self._latency["count"]
                latency = {
                    "count": int(count),
                    "avg_ms": self._latency["sum_ms"] / count,
                    "max_ms": self._latency["max_ms"],
                }
            return {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "providers": {name: dict(stats) for name, stats in self._providers.items()},
                "generation_latency": latency,
                "question_fallbacks": dict(self._fallbacks),
                "recent_failovers": list(self._failovers),
            }

    def reset(self) -> None:
        with self._lock:
            self._providers.clear()
            self._latency = {}
            self._failovers.clear()
            self._fallbacks.clear()


telemetry = ProviderTelemetry()
