"""Error taxonomy for the exchange pipeline."""


class TutorError(Exception):
    """Base class for errors surfaced to the learner as a chat message."""

    user_message = "Sorry, something went wrong. Please try again."

    def __init__(self, detail: str = "", *, status_code: int | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail
        self.status_code = status_code


class ValidationError(TutorError):
    """Input rejected before any network call (empty, too long, suspicious)."""

    def __init__(self, detail: str):
        super().__init__(detail, status_code=400)
        self.user_message = detail


class RateLimitError(TutorError):
    """The backend admission gate refused the request (HTTP 429)."""

    user_message = "You're sending messages too quickly. Please wait a moment and try again."

    def __init__(self, detail: str = ""):
        super().__init__(detail, status_code=429)


class TransientNetworkError(TutorError):
    """Retryable failure that persisted after the retry policy was exhausted."""

    user_message = "The tutor service is temporarily unavailable. Please try again in a moment."


class UpstreamServiceError(TutorError):
    """Non-retryable failure or malformed reply from the completion endpoint."""

    user_message = "Sorry, the tutor couldn't answer that. Please try again."


class StorageQuotaError(TutorError):
    """The storage backend ran out of space while writing."""

    user_message = "Local storage is full."
