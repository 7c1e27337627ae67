"""Common exceptions for domain and repository layers."""
from __future__ import annotations


class WebhookEngineError(Exception):
    """Base error for the webhook engine."""


class RepositoryError(WebhookEngineError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class SubscriptionValidationError(WebhookEngineError):
    """Raised when a subscription's endpoint or policy is malformed.

    ``errors`` carries pydantic-style error dicts for API responses.
    """

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidStatusTransitionError(WebhookEngineError):
    """Raised when an event attempts an unsupported status change."""
