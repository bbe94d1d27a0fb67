"""CircleCI client error types."""

from __future__ import annotations

# Status codes worth another attempt: rate limiting and transient server faults.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503})


class CircleCIError(Exception):
    """Base exception for CircleCI client errors."""


class ConfigurationError(CircleCIError):
    """Raised when required provider or resource configuration is missing."""


class ConflictError(CircleCIError):
    """Raised when a create would collide with an existing remote object."""


class APIError(CircleCIError):
    """Non-2xx response from the CircleCI API."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}" if message else str(status_code))

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


class TransportError(CircleCIError):
    """Network or serialization failure while talking to CircleCI.

    The original exception is chained via ``__cause__``.
    """

    def __init__(self, method: str, path: str, message: str) -> None:
        self.method = method
        self.path = path
        super().__init__(f"{method} {path}: {message}")


class RetryExhaustedError(CircleCIError):
    """Raised when the retry budget runs out on a retryable error."""

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Giving up after {attempts} attempt(s): {last_error}")
