"""Custom exceptions for the contact discovery domain."""


class DiscoveryError(Exception):
    """Base exception for this project."""


class ConfigError(DiscoveryError):
    """Raised when runtime configuration is invalid."""


class FetchError(DiscoveryError):
    """Raised when fetching a URL fails unexpectedly."""


class ExtractionError(DiscoveryError):
    """Raised when an extractor cannot interpret its input."""


class VerificationError(DiscoveryError):
    """Raised when mailbox verification fails unexpectedly."""


class DeadlineExceeded(DiscoveryError):
    """Raised when a target runs past its processing deadline."""
