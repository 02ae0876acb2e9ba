"""Custom exceptions for the harbor-sync application."""


class HarborSyncError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(HarborSyncError):
    """Raised for configuration-related issues."""

    pass


class BucketNotFoundError(HarborSyncError):
    """Raised when the target bucket does not exist."""

    pass


class TransferError(HarborSyncError):
    """Raised when an upload or a deletion fails."""

    pass


class InvalidationError(HarborSyncError):
    """Raised when a CDN invalidation request is rejected."""

    pass


class SyncInterruptedError(HarborSyncError):
    """Raised when a shutdown signal stops the sync before it completes."""

    pass
