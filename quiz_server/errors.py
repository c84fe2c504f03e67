"""Error taxonomy shared by the game engine, the AI clients and the HTTP layer."""

from typing import Dict, Optional


class QuizError(Exception):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class OutOfRange(QuizError):
    status_code = 400


class NotFound(QuizError):
    status_code = 404


class SessionClosed(QuizError):
    status_code = 409


class RoomUnavailable(QuizError):
    status_code = 409


class StorageError(QuizError):
    status_code = 500


class AIProviderError(QuizError):
    """Non-rate-limit failure talking to a generative backend."""
    status_code = 502

    def __init__(self, message: str = "", provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class MalformedResponse(AIProviderError):
    status_code = 502


class RateLimited(AIProviderError):
    status_code = 503


class AllProvidersExhausted(QuizError):
    status_code = 503

    def __init__(self, errors: Optional[Dict[str, str]] = None):
        self.errors = dict(errors or {})
        if self.errors:
            detail = "; ".join(f"{name}: {msg}" for name, msg in self.errors.items())
            message = f"All AI providers failed ({detail})"
        else:
            message = "No AI providers available"
        super().__init__(message)
