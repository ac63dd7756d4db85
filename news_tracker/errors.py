"""
Error taxonomy for the news memory pipeline.

Provider failures (network, rate limits, 5xx, malformed payloads) are
transient: callers recover through a fallback tier or by skipping the item.
Validation errors are the only failures surfaced to the end user.
"""


class NewsTrackerError(Exception):
    """Base exception for news tracker errors."""
    pass


class TransientProviderError(NewsTrackerError):
    """Raised when an external provider call fails in a recoverable way."""
    pass


class EmbeddingError(TransientProviderError):
    """Raised when an embedding vector cannot be produced."""
    pass


class SummarizationError(TransientProviderError):
    """Raised when content cannot be summarized by the external model."""
    pass


class ValidationError(NewsTrackerError):
    """Raised when required user input is missing or empty."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class DataIntegrityWarning(UserWarning):
    """
    Source data that was skipped instead of indexed.

    Logged (not raised) by the indexer for duplicate sources and for
    content below the minimum length; the class name is carried in the
    log record's attributes.
    """
    pass
