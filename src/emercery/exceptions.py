"""Custom exception hierarchy for emercery."""

from __future__ import annotations


class EmerceryError(Exception):
    """Base exception for all emercery errors."""


class EmerceryConfigError(EmerceryError):
    """Invalid or missing configuration."""


class EmerceryValidationError(EmerceryError):
    """A local precondition failed before any network call was made."""

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class EmerceryApiError(EmerceryError):
    """A logical HTTP operation failed after the retry policy was applied.

    ``retries`` counts the attempts made *after* the first one, so a request
    that failed on its only attempt reports ``retries == 0``.  The underlying
    transport exception, if any, is chained as ``__cause__``.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        method: str = "",
        retries: int = 0,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.url = url
        self.method = method
        self.retries = retries
        self.status_code = status_code
        super().__init__(message)

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__


class EmerceryNetworkError(EmerceryApiError):
    """Transport-level failure (connection refused, reset, DNS)."""

    retryable = True


class EmerceryTimeoutError(EmerceryApiError):
    """The request did not complete before its deadline and was aborted."""

    retryable = True


class EmerceryServerError(EmerceryApiError):
    """The backend answered with a 5xx status."""

    retryable = True


class EmerceryClientError(EmerceryApiError):
    """The backend rejected the request with a 4xx status.

    The server-provided detail is surfaced verbatim as the message.
    These are never retried.
    """
