"""Classification of delivery failures for orchestrators that retry."""

import enum
import logging

from ..domain import RetryError, ValidationError

LOGGER = logging.getLogger(__name__)


class Outcome(enum.Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


class RetryPolicy:
    """Decides whether a failed delivery should be attempted again.

    Destinations raise every failure as ``RetryError``; the policy looks at
    the chained cause to tell transient failures from inputs that can never
    be delivered:

    - a ``ValidationError`` (directly or as the cause of a ``RetryError``)
      is fatal, retrying the same event fails the same way;
    - a ``RetryError`` marked ``drop`` is fatal;
    - anything else is retried until ``max_attempts`` is reached.

    Attributes:
        max_attempts: The maximum number of attempts (initial + retries).
            Must be positive.
        base_delay: Delay in seconds before the first retry.
            Must be non-negative.
        max_delay: Upper bound of the delay between attempts.

    Examples:
        >>> policy = RetryPolicy(max_attempts=3, base_delay=0.5)
        >>> policy.classify(RetryError("timeout"), attempt=1)
        <Outcome.RETRY: 'retry'>
        >>> policy.backoff(3)
        2.0
    """

    __slots__ = ("max_attempts", "base_delay", "max_delay")

    def __init__(self, max_attempts: int = 5, base_delay: float = 1.0, max_delay: float = 60.0):
        """Initialize the retry policy.

        Raises:
            ValueError: If max_attempts <= 0, base_delay < 0 or max_delay < base_delay.
        """
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if max_delay < base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def classify(self, error: BaseException | None, attempt: int) -> Outcome:
        """Classify the result of attempt number ``attempt`` (1-based).

        Args:
            error: The exception raised by the attempt, or None on success.
            attempt: Number of the attempt that just finished.
        """
        if error is None:
            return Outcome.SUCCESS
        cause = error.__cause__ if isinstance(error, RetryError) else error
        if isinstance(cause, ValidationError):
            return Outcome.FATAL
        if isinstance(error, RetryError) and error.drop:
            return Outcome.FATAL
        if attempt >= self.max_attempts:
            LOGGER.warning(f"Max attempts ({self.max_attempts}) reached: {error}")
            return Outcome.FATAL
        return Outcome.RETRY

    def backoff(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt``: exponential and capped."""
        if attempt <= 0:
            return 0.0
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
