"""
Gateway API error classification.

Every failure surfaced by the client is one of the types below, so callers
can tell a flaky network from a rejected login or an unexpected reply:

- **TransportError**: connection-level failure, retried per RetryPolicy
- **AuthFailure (401/403)**: rejected credentials or expired token,
  recovered once by re-login before reaching the caller
- **ApiError (other non-2xx)**: unexpected status, never retried
- **DecodeError**: 2xx body that does not fit the expected shape
- **LoginError**: login accepted but no token returned

Error Classification Strategy:
    Network  → TransportError → retry until RetryPolicy timeout
    HTTP 401/403 → AuthFailure → re-login + one retry
    HTTP other non-2xx → ApiError → fail immediately
    Bad JSON / schema drift → DecodeError → fail + diagnostics sink
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

StatusClass = Literal["ok", "auth", "api"]

AUTH_STATUS_CODES = frozenset({401, 403})


@dataclass(frozen=True)
class PowerwallError(Exception):
    """
    Base exception for all gateway API errors.

    Attributes:
        message: Human-readable error description.
        url: Target URL of the failed call (None when not applicable).
        status_code: HTTP status code (None for non-HTTP errors).
        response_text: Raw response body text.
    """
    message: str
    url: str | None = None
    status_code: int | None = None
    response_text: str | None = None

    def __str__(self) -> str:
        parts = [self.message]
        if self.url:
            parts.append(f"url={self.url}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.response_text:
            parts.append(f"response={self.response_text!r}")
        return " | ".join(parts)


class TransportError(PowerwallError):
    """
    Connection-level failure (refused, reset, timed out).

    Raised after the retry policy is exhausted. Says nothing about the
    state of the session token.
    """
    pass


@dataclass(frozen=True)
class AuthFailure(PowerwallError):
    """
    HTTP 401/403 - the gateway refused our credentials or token.

    ``error_text`` and ``error_message`` come from the ``error`` and
    ``message`` fields of the JSON error body, when it parses.
    """
    error_text: str = ""
    error_message: str = ""

    def __str__(self) -> str:
        return f"Authentication Failed: {self.error_text} ({self.error_message})"


class ApiError(PowerwallError):
    """
    Unexpected HTTP status outside 200-299 (other than 401/403).
    """

    def __str__(self) -> str:
        return (
            f"API call to {self.url} returned unexpected status code "
            f"{self.status_code} ({self.response_text!r})"
        )


@dataclass(frozen=True)
class DecodeError(PowerwallError):
    """
    Response body could not be decoded into the requested result type.
    """
    endpoint: str = ""


class LoginError(PowerwallError):
    """
    Login call completed without returning an auth token.
    """
    pass


def classify_status(status_code: int) -> StatusClass:
    if 200 <= status_code < 300:
        return "ok"
    if status_code in AUTH_STATUS_CODES:
        return "auth"
    return "api"
