"""Exception types raised by ui-sentinel.

Startup errors (registration, pattern validation, unreadable knowledge base)
propagate to the caller. Remote errors are raised by providers and turned
into error-state insights by the gateway.
"""

from __future__ import annotations

from typing import Optional


class SentinelError(Exception):
    """Base exception for ui-sentinel errors."""


class CheckerRegistrationError(SentinelError):
    """Raised when the checker registry cannot be assembled."""


class PatternValidationError(SentinelError, ValueError):
    """Raised when a knowledge pattern violates a persistence rule."""

    def __init__(self, message: str, pattern_id: Optional[str] = None):
        self.pattern_id = pattern_id
        if pattern_id:
            message = f"pattern {pattern_id!r}: {message}"
        super().__init__(message)


class KnowledgeBaseError(SentinelError):
    """Raised when the knowledge base file cannot be read or written."""


class RemoteAnalysisError(SentinelError):
    """Base exception for remote analysis failures."""

    def __init__(self, message: str, provider: str = "unknown"):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class RemoteStatusError(RemoteAnalysisError):
    """The remote service answered with an HTTP error status."""

    def __init__(self, status_code: int, message: str = "", provider: str = "unknown"):
        self.status_code = status_code
        detail = f"HTTP {status_code}"
        if message:
            detail += f": {message}"
        super().__init__(detail, provider=provider)

    @property
    def is_retryable(self) -> bool:
        """Rate-limited (429) and overloaded (529) responses may be retried."""
        return self.status_code in (429, 529)


class RemoteTransportError(RemoteAnalysisError):
    """The request never produced a response (connection failure or timeout)."""
