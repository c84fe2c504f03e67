"""Adaptive difficulty and scoring rules.

The session keeps a continuous difficulty estimate in [1.00, 5.00]. Each
answer moves it by a step that depends on correctness and answer time:

  - correct and faster than ``fast_answer_threshold_seconds`` -> ``fast_answer_bonus_delta``
  - correct otherwise                                         -> ``slow_answer_delta``
  - incorrect, at any speed                                   -> ``incorrect_answer_delta``

An optional ``very_fast_threshold_seconds`` tier sits in front of the fast
tier; it is off by default. Setting it to 3.0 gives the tiered variant
(+0.50 / 20 points under three seconds).
"""

from dataclasses import dataclass
import math
from typing import Iterable, Optional

from quiz_server.models import MIN_DIFFICULTY, MAX_DIFFICULTY
from quiz_server.utils.env import env_float, env_int


@dataclass(frozen=True)
class DifficultyPolicy:
    fast_answer_threshold_seconds: float = 6.0
    fast_answer_bonus_delta: float = 0.25
    fast_answer_score: int = 15
    slow_answer_delta: float = 0.10
    correct_answer_score: int = 10
    incorrect_answer_delta: float = -0.25
    very_fast_threshold_seconds: Optional[float] = None
    very_fast_bonus_delta: float = 0.50
    very_fast_score: int = 20

    @classmethod
    def from_env(cls) -> "DifficultyPolicy":
        base = cls()
        return cls(
            fast_answer_threshold_seconds=env_float("FAST_ANSWER_THRESHOLD_SECONDS", base.fast_answer_threshold_seconds),
            fast_answer_bonus_delta=env_float("FAST_ANSWER_BONUS_DELTA", base.fast_answer_bonus_delta),
            fast_answer_score=env_int("FAST_ANSWER_SCORE", base.fast_answer_score),
            slow_answer_delta=env_float("SLOW_ANSWER_DELTA", base.slow_answer_delta),
            correct_answer_score=env_int("CORRECT_ANSWER_SCORE", base.correct_answer_score),
            incorrect_answer_delta=env_float("INCORRECT_ANSWER_DELTA", base.incorrect_answer_delta),
            very_fast_threshold_seconds=env_float("VERY_FAST_THRESHOLD_SECONDS", base.very_fast_threshold_seconds),
            very_fast_bonus_delta=env_float("VERY_FAST_BONUS_DELTA", base.very_fast_bonus_delta),
            very_fast_score=env_int("VERY_FAST_SCORE", base.very_fast_score),
        )

    def is_very_fast(self, time_sec: float) -> bool:
        return self.very_fast_threshold_seconds is not None and time_sec < self.very_fast_threshold_seconds


DEFAULT_POLICY = DifficultyPolicy()


def clamp_difficulty(value: float) -> float:
    return round(max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, value)), 2)


def next_difficulty(current: float, correct: bool, time_sec: float,
                    policy: DifficultyPolicy = DEFAULT_POLICY) -> float:
    if not correct:
        delta = policy.incorrect_answer_delta
    elif policy.is_very_fast(time_sec):
        delta = policy.very_fast_bonus_delta
    elif time_sec < policy.fast_answer_threshold_seconds:
        delta = policy.fast_answer_bonus_delta
    else:
        delta = policy.slow_answer_delta
    return clamp_difficulty(current + delta)


def score_delta(correct: bool, time_sec: float, policy: DifficultyPolicy = DEFAULT_POLICY) -> int:
    if not correct:
        return 0
    if policy.is_very_fast(time_sec):
        return policy.very_fast_score
    if time_sec < policy.fast_answer_threshold_seconds:
        return policy.fast_answer_score
    return policy.correct_answer_score


def within_range(value, low: float, high: float) -> bool:
    """True for a finite number in [low, high]; NaN and infinities never pass."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and low <= value <= high


def difficulty_level(value: float) -> int:
    """Nearest integer question level for a continuous difficulty (halves round up)."""
    if not within_range(value, MIN_DIFFICULTY, MAX_DIFFICULTY):
        raise ValueError(f"difficulty must be a number between 1 and 5, got {value!r}")
    return int(math.floor(float(value) + 0.5))


def nearest_allowed_level(level: int, allowed: Optional[Iterable[int]]) -> int:
    """Closest level permitted by a room filter; ties go to the easier level."""
    choices = sorted({int(x) for x in (allowed or [])})
    if not choices or level in choices:
        return level
    return min(choices, key=lambda x: (abs(x - level), x))
