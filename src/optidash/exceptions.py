"""SDK-specific exceptions."""

from __future__ import annotations

from typing import Any, Mapping, Sequence


class OptidashError(Exception):
    """Base exception for all Optidash client failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        metadata: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        retry_after: float | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.metadata = dict(metadata) if metadata is not None else {}
        self.headers = dict(headers) if headers is not None else {}
        self.retry_after = retry_after
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        return f"{self.status_code}: {self.args[0]}"


class OptidashValidationError(OptidashError):
    """Raised for invalid client configuration or builder chains."""

    def __init__(self, message: str, *, errors: Sequence[str] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors) if errors is not None else [message]


class OptidashHTTPError(OptidashError):
    """Raised for HTTP non-success responses."""


class OptidashAuthError(OptidashHTTPError):
    """Raised for authentication and authorization failures."""


class OptidashRateLimitError(OptidashHTTPError):
    """Raised for HTTP 429 responses."""


class OptidashAPIError(OptidashHTTPError):
    """Raised when the API reports `success: false` for a request."""

    def __str__(self) -> str:
        return self.message


class OptidashNetworkError(OptidashError):
    """Raised for transport-level failures like DNS and TCP errors."""


class OptidashTimeoutError(OptidashError):
    """Raised when a request exceeds configured timeout."""


class OptidashIOError(OptidashError):
    """Raised when reading the upload source or writing the destination fails."""


class OptidashParseError(OptidashError):
    """Raised when a response body or metadata header is not valid JSON."""

    def __str__(self) -> str:
        return self.message
