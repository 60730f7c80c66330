class RegistrationError(Exception):
    """Base class for pending-registration failures."""


class RegistrationNotFoundError(RegistrationError):
    """Raised when no live pending registration exists for an identity."""


class AttemptsExceededError(RegistrationError):
    """Raised when the verification attempts for a record are exhausted."""


class CodeMismatchError(RegistrationError):
    """Raised when the submitted code does not match the active one."""

    def __init__(self, message: str, *, attempts_remaining: int) -> None:
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class ResendTooSoonError(RegistrationError):
    """Raised when a new code is requested inside the cooldown window."""

    def __init__(self, message: str, *, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class RegistrationConflictError(RegistrationError):
    """Raised when the identity is already registered."""


class SchedulerError(Exception):
    """Base scheduler error."""


class SchedulerNotRunningError(SchedulerError):
    """Raised when scheduling on a scheduler that was not started or is shut down."""


class InferenceError(Exception):
    """Base class for inference failures; never surfaced to callers of predict()."""

    reason = "inference_error"


class InferenceTransportError(InferenceError):
    reason = "transport_error"


class InferenceTimeoutError(InferenceError):
    reason = "timeout"


class InferenceParseError(InferenceError):
    reason = "unparseable_response"


class InferenceValidationError(InferenceError):
    reason = "invalid_response"


class NotificationDeliveryError(Exception):
    """Raised when a one-time code could not be delivered."""


class PullRequestNotFoundError(Exception):
    """Raised when the pull request is unknown."""


class PullRequestConflictError(Exception):
    """Raised when an operation violates the pull request state transitions."""
