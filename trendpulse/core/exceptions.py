"""Custom exceptions for TrendPulse."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Tags carried by failed provider calls and dropped items."""

    PROVIDER_TIMEOUT = "ProviderTimeout"
    PROVIDER_ERROR = "ProviderError"
    BREAKER_OPEN = "BreakerOpen"
    VALIDATION_ERROR = "ValidationError"
    PERSISTENCE_ERROR = "PersistenceError"


class TrendPulseError(Exception):
    """Base exception for all TrendPulse errors."""
    pass


class APIError(TrendPulseError):
    """Base exception for external API failures."""
    pass


class ProviderError(APIError):
    """Raised by a provider adapter when a fetch fails."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call times out."""

    kind = ErrorKind.PROVIDER_TIMEOUT


class ProviderResponseError(ProviderError):
    """Raised when a provider answers with an error status or a malformed body."""

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, provider=provider)


class ValidationError(TrendPulseError):
    """Raised when a request or a raw item fails validation."""

    kind = ErrorKind.VALIDATION_ERROR


class PersistenceError(TrendPulseError):
    """Raised when repository operations fail."""

    kind = ErrorKind.PERSISTENCE_ERROR

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)
