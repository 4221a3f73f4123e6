"""Error taxonomy for credits, provider tasks and paid actions.

Every error carries the HTTP status it maps to at the request boundary and
renders itself as the JSON body returned to the client.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SnaptasticError(Exception):
    """Base exception for the API."""

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error, "message": self.message}
        payload.update(self.extra)
        return payload


class Unauthorized(SnaptasticError):
    status_code = 401
    error = "Unauthorized"


class InvalidInputError(SnaptasticError):
    """Missing or invalid request fields, rejected uploads."""

    status_code = 400

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        payload.update(self.extra)
        return payload


class InsufficientCredits(SnaptasticError):
    status_code = 402
    error = "Insufficient credits"

    def __init__(self, credits: int, message: str = "Not enough credits. Purchase more credits to continue."):
        super().__init__(message, extra={"credits": int(credits)})
        self.credits = int(credits)


class DebitFailed(SnaptasticError):
    error = "Failed to deduct credits"


class ConfigurationError(SnaptasticError):
    error = "Service misconfigured"


class ProviderError(SnaptasticError):
    """Non-success response (or transport failure) from the AI provider."""

    error = "Provider error"

    def __init__(self, provider: str, status_code: int, body: str):
        super().__init__(f"{provider} API error: {status_code} - {body}")
        self.provider = provider
        self.provider_status = int(status_code)
        self.body = body


class TaskFailed(SnaptasticError):
    error = "Task failed"


class TaskTimeoutError(SnaptasticError, TimeoutError):
    error = "Task timed out"


class TaskCancelled(SnaptasticError):
    error = "Task cancelled"


class RateLimited(SnaptasticError):
    status_code = 429
    error = "Too many requests"


class PersistenceError(SnaptasticError):
    error = "Failed to persist record"


class ServiceDisabled(SnaptasticError):
    status_code = 503
    error = "Service unavailable"


class RequestFailed(SnaptasticError):
    """Unexpected failure of a route, labelled with what the route was doing."""

    def __init__(self, error: str, message: str):
        super().__init__(message)
        self.error = error


class PaidActionFailed(RequestFailed):
    """Boundary wrapper for any non-credit failure of a paid action."""
