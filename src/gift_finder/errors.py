"""Exceptions raised by external provider adapters."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """An external provider call failed after its retry budget."""


class ProviderRateLimitError(ProviderError):
    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class DuplicateUserError(ValueError):
    """Username or email is already registered."""
