"""Custom exception types for the feedback resolver.

Error messages say what failed, why it failed, and how to fix it, so that a
fatal error printed by the CLI is actionable without reading the logs.

Recoverable failures (a single triage call, a single chunk, a single send, a
single notification channel) are caught at the stage that issued them and
recorded on the result objects. Only configuration and input errors stop a run.
"""


class ResolverError(Exception):
    """Base exception for all feedback resolver errors."""

    pass


class ConfigValidationError(ResolverError):
    """Raised when config.yaml fails Pydantic validation or a runtime check.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(ResolverError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class InputError(ResolverError):
    """Raised when feedback input cannot be read (missing file, permissions, no input)."""

    pass


class AuthenticationError(ResolverError):
    """Raised when MSAL device code flow fails or tokens cannot be acquired."""

    pass


class GraphAPIError(ResolverError):
    """Raised when Microsoft Graph API returns an error.

    Attributes:
        status_code: HTTP status code from the API
        error_code: Error code from Graph API response (if available)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class RateLimitExceeded(GraphAPIError):
    """Raised when Graph API throttling persists after all retries."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, status_code=429, error_code="TooManyRequests")
        self.retry_after = retry_after


class GenerationError(ResolverError):
    """Raised when a text-generation call fails (timeout, transport, API status).

    Callers in the analysis stages catch this and fall back to the original
    content for the item or chunk that failed.

    Attributes:
        retryable: Whether the underlying failure is transient
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class StoreError(ResolverError):
    """Raised when the processed-id store cannot be read or written."""

    pass


class NotificationError(ResolverError):
    """Raised when a report delivery channel fails.

    Attributes:
        channel: Name of the channel that failed
    """

    def __init__(self, message: str, channel: str):
        super().__init__(message)
        self.channel = channel
