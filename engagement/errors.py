"""
Error taxonomy shared by the presence, pub/sub, stream and campaign layers.

Routes translate these into HTTP responses; campaign runners translate them
into per-recipient outcomes so a single recipient never aborts a batch.
"""


class EngagementError(Exception):
    """Base exception for engagement operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class Unauthorized(EngagementError):
    """Bad or missing trigger secret."""


class Unauthenticated(EngagementError):
    """No valid user identity on a user-facing operation."""


class NotFound(EngagementError):
    """Referenced entity does not exist (or is not visible to the caller)."""


class ValidationError(EngagementError):
    """Malformed input."""


class StorageUnavailable(EngagementError):
    """The data store or shared cache could not be reached. Retryable."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message, operation=operation, recoverable=recoverable)


class TransportFailure(EngagementError):
    """The email transport rejected or failed to accept a message."""


class SkippedRecipient(EngagementError):
    """
    Deliberate no-op for a single recipient inside a batch.

    Not a failure: it is counted as ``skipped`` in the run summary.
    """

    def __init__(self, reason: str, user_id: str | None = None):
        super().__init__(reason, operation="campaign_recipient")
        self.reason = reason
        self.user_id = user_id


class MissingPersonalization(SkippedRecipient):
    """A template value required for this recipient was absent at render time."""
