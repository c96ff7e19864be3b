"""
Custom exception classes for the scheduled-post publishing engine.

Errors are scoped: only ``StoreUnavailableError`` raised while fetching due
posts aborts a whole tick.  Every other condition belongs to a single post
and is converted into a ``failed`` status update plus an activity record by
the publish executor.

Hierarchy:
    Exception
    +-- SchedulerBaseError (base for all scheduling errors)
    |   +-- StoreUnavailableError
    |   +-- CredentialMissingError
    |   +-- PublishRejectedError
    |   +-- AlreadyClaimedError
    |   +-- LogSinkError
    +-- ValidationError (ValueError)
    +-- ConfigurationError
    +-- RetryExhaustedError
"""

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class SchedulerBaseError(Exception):
    """Base exception for all scheduling-related errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails."""

    pass


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# DISPATCH EXCEPTIONS
# =============================================================================


class StoreUnavailableError(SchedulerBaseError):
    """Raised when a job store query or update fails.

    When raised by the due-post fetch the whole tick is abandoned and the
    next clock tick retries.  No post changes state.
    """

    pass


class CredentialMissingError(SchedulerBaseError):
    """Raised when an owner has no usable publishing credential.

    Attributes:
        owner_id: Owner whose credential could not be resolved.
    """

    def __init__(self, owner_id: str, message: Optional[str] = None):
        self.owner_id = owner_id
        super().__init__(message or f"No valid credential found for owner {owner_id}")


class PublishRejectedError(SchedulerBaseError):
    """Raised by a publisher when the external API rejects a post.

    Attributes:
        message: The publisher's error message, stored verbatim on the post.
        post_id: Optional id of the post being published.
    """

    def __init__(self, message: str, post_id: Optional[str] = None):
        self.message = message
        self.post_id = post_id
        super().__init__(message)


class AlreadyClaimedError(SchedulerBaseError):
    """A conditional update affected zero rows.

    Another actor already moved the post out of ``pending``.  This is a
    normal outcome, not a user-visible error.

    Attributes:
        post_id: Id of the post that was already finalized.
    """

    def __init__(self, post_id: str):
        self.post_id = post_id
        super().__init__(f"Post {post_id} was already processed by another instance")


class LogSinkError(SchedulerBaseError):
    """Raised when the activity log sink fails to accept a record."""

    pass


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "SchedulerBaseError",
    # Core
    "ValidationError",
    "ConfigurationError",
    "RetryExhaustedError",
    # Dispatch
    "StoreUnavailableError",
    "CredentialMissingError",
    "PublishRejectedError",
    "AlreadyClaimedError",
    "LogSinkError",
]
