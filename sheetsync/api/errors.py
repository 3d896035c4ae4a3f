from __future__ import annotations

"""Request error taxonomy for the platform client.

Recoverable errors may be retried by the transport (when the request allows
it); fatal errors are raised straight to the caller. ``RetryError`` is raised
once a recoverable error has exhausted the attempt budget.
"""

__all__ = [
    "FatalError",
    "NotFoundError",
    "PayloadError",
    "RateError",
    "RecoverableError",
    "RedirectError",
    "RequestError",
    "RequestTimeoutError",
    "RetryError",
    "ServerError",
    "UnauthorizedError",
    "error_for_status",
]

RAW_EXCERPT_LIMIT = 2_000


class RequestError(Exception):
    """A platform request failed.

    Attributes:
        method: HTTP method
        url: full request URL
        status: HTTP status, None when no response was received
        raw: response body text (may be empty)
    """

    def __init__(self, method: str, url: str, status: int | None = None, raw: str = "") -> None:
        self.method = method
        self.url = url
        self.status = status
        self.raw = raw
        message = f"Request failed: {method} {url}"
        if status is not None:
            message += f" (status {status})"
        if raw:
            message += " Raw Response: " + raw[:RAW_EXCERPT_LIMIT]
        super().__init__(message)


class RecoverableError(RequestError):
    pass


class FatalError(RequestError):
    pass


class ServerError(RecoverableError):
    pass


class RequestTimeoutError(RecoverableError):
    pass


class RateError(RecoverableError):
    def __init__(
        self, method: str, url: str, status: int | None = None, raw: str = "", retry_after: float | None = None
    ) -> None:
        super().__init__(method, url, status, raw)
        self.retry_after = retry_after

    def recover_in(self) -> float:
        """Seconds to wait before retrying (Retry-After, else 30s)."""
        if self.retry_after is not None:
            return self.retry_after
        return 30.0


class RedirectError(RecoverableError):
    pass


class PayloadError(FatalError):
    pass


class UnauthorizedError(FatalError):
    pass


class NotFoundError(FatalError):
    pass


class RetryError(FatalError):
    """Recoverable error that kept failing for every allowed attempt."""

    def __init__(self, original: RecoverableError, attempts: int) -> None:
        super().__init__(original.method, original.url, original.status, original.raw)
        self.original = original
        self.attempts = attempts


_STATUS_ERRORS: dict[int, type[RequestError]] = {
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: RequestTimeoutError,
    408: RequestTimeoutError,
    429: RateError,
    400: PayloadError,
    404: NotFoundError,
    401: UnauthorizedError,
    403: UnauthorizedError,
    301: RedirectError,
    302: RedirectError,
    303: RedirectError,
    307: RedirectError,
    308: RedirectError,
}


def error_for_status(
    method: str, url: str, status: int, raw: str = "", retry_after: float | None = None
) -> RequestError | None:
    """Map a response status to an error instance; None for success and 304."""
    if status < 300 or status == 304:
        return None
    error_cls = _STATUS_ERRORS.get(status, FatalError)
    if error_cls is RateError:
        return RateError(method, url, status, raw, retry_after=retry_after)
    return error_cls(method, url, status, raw)
