"""Exceptions raised by the transformation and delivery pipeline."""


class SluiceError(Exception):
    """Base class for all pipeline errors."""

    pass


class ValidationError(SluiceError):
    """Raised when an event or configuration cannot be processed at all.

    Validation errors are fatal: retrying the same input will fail the
    same way, so orchestrators should not schedule a retry.
    """

    pass


class PayloadTooLargeError(ValidationError):
    """Raised when a serialized row exceeds the maximum payload size."""

    def __init__(self, size: int, limit: int, excerpt: str = ""):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Max allowed size is {limit} bytes. Event size is: {size} bytes: \n{excerpt}..."
        )


class ConfigurationError(ValidationError):
    """Raised when a destination or connection configuration is malformed."""

    pass


class HTTPError(SluiceError):
    """Raised when a sink responds with an unexpected HTTP status.

    Attributes:
        status: HTTP status code returned by the sink.
        body: Excerpt of the response body (may be empty).
    """

    def __init__(self, message: str, status: int, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        if self.body:
            return f"{self.args[0]} Response: {self.body}"
        return str(self.args[0])


class RetryError(SluiceError):
    """Transient failure that an orchestrator may retry.

    The delivery layer raises RetryError ``from`` the underlying error, so
    the original exception is always available as ``__cause__``.
    """

    def __init__(self, message: str, drop: bool = False):
        super().__init__(message)
        self.drop = drop

    @classmethod
    def wrap(cls, error: BaseException) -> "RetryError":
        """Build a RetryError describing ``error``.

        The caller is still responsible for chaining with ``raise ... from``.
        """
        return cls(f"{type(error).__name__}: {error}")


class StoreError(SluiceError):
    """Raised when a backing store is unavailable or does not acknowledge a write."""

    pass
