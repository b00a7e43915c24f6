"""Shared exception definitions for the application."""

from typing import Optional


class QuoteSyncError(Exception):
    """Base exception for quote synchronization errors."""

    pass


class ConfigurationError(QuoteSyncError):
    """Raised when configuration is missing or invalid."""

    pass


class MissingCredentialError(QuoteSyncError):
    """Raised before any pricing call when no bearer credential is available."""

    pass


class PricingEngineError(QuoteSyncError):
    """Raised when the pricing engine rejects or fails a request."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UnauthorizedError(PricingEngineError):
    """Raised when the pricing engine refuses the credential."""

    def __init__(self, message: str = "Pricing session expired", status: int = 401):
        super().__init__(message, status=status)


class BatchQuantityError(QuoteSyncError):
    """Raised when any request of a multi-quantity batch fails."""

    pass


class SnapshotDecodeError(QuoteSyncError):
    """Raised when persisted line-item data cannot be decoded."""

    pass
