"""Error taxonomy for the tour API client."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Upstream (data.go.kr) result codes for conditions that clear up on their own:
# 01 application error, 04 HTTP error, 05 service timeout, 22 request quota exceeded.
TRANSIENT_RESULT_CODES = frozenset(
    {"01", "04", "05", "22", "SERVICE_ERROR", "TIMEOUT", "RATE_LIMIT"}
)


class TourApiError(RuntimeError):
    pass


class TransportError(TourApiError):
    """Network failure or 5xx response that survived every retry."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.status_code = status_code


class ApiError(TourApiError):
    """Well-formed response carrying a non-success code, or a hard 4xx."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        if self.status_code:
            return f"HTTP {self.status_code}: {self.message}"
        return self.message


class ConfigError(TourApiError):
    pass


@dataclass(frozen=True)
class ValidationRejection:
    """Returned (never raised) when a request cannot be issued as given."""

    field: str
    reason: str

    @property
    def message(self) -> str:
        if self.reason == "required":
            return f"{self.field} is required"
        return f"{self.field}: {self.reason}"


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, TransportError):
        return True
    if isinstance(error, ApiError):
        if error.code and error.code in TRANSIENT_RESULT_CODES:
            return True
        if error.status_code is not None and error.status_code >= 500:
            return True
    return False


def error_message(error: object) -> str:
    """Short message suitable for showing next to a retry button."""
    if isinstance(error, TransportError):
        return "Network problem while contacting the tour service. Please try again."
    if isinstance(error, ApiError):
        if error.status_code == 404:
            return "The requested information could not be found."
        return str(error)
    if isinstance(error, ValidationRejection):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or "Something went wrong."
    if isinstance(error, str):
        return error
    return "Something went wrong. Please try again later."
