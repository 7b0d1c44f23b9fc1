"""Errors raised by the GitHub feed client."""

from __future__ import annotations

import enum
import typing as typ


class FetchFailureReason(enum.StrEnum):
    """Machine-readable reasons carried by :class:`Failed` fetch results."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NOT_FOUND = "not_found"
    INVALID_JSON = "invalid_json"
    UNEXPECTED_SHAPE = "unexpected_shape"


class FeedFetchError(RuntimeError):
    """Raised when a fetch result cannot be used by the caller."""

    def __init__(
        self,
        message: str,
        *,
        reason: FetchFailureReason | str,
        status_code: int | None = None,
    ) -> None:
        """Record the failure reason and the last HTTP status seen."""
        self.reason = reason
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def rate_limited(cls, url: str) -> typ.Self:
        """Return an error for a request withheld by the rate limiter."""
        return cls(
            f"rate-limit budget exhausted for {url}",
            reason=FetchFailureReason.RATE_LIMITED,
        )

    @classmethod
    def failed(
        cls, url: str, reason: FetchFailureReason | str, status_code: int | None
    ) -> typ.Self:
        """Return an error for a fetch that exhausted its retries."""
        suffix = f" (HTTP {status_code})" if status_code is not None else ""
        return cls(
            f"fetch of {url} failed: {reason}{suffix}",
            reason=reason,
            status_code=status_code,
        )

    @classmethod
    def unexpected_shape(cls, url: str, detail: str) -> typ.Self:
        """Return an error for a body that does not match the expected schema."""
        return cls(
            f"unexpected response from {url}: {detail}",
            reason=FetchFailureReason.UNEXPECTED_SHAPE,
        )
