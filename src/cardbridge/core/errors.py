"""cardbridge exception hierarchy.

All client failures inherit from :class:`CardBridgeError` so callers can
catch one type at the form-submission boundary.
"""

from __future__ import annotations

from dataclasses import dataclass


class CardBridgeError(Exception):
    """Base exception for all cardbridge errors."""


class TrustAnchorUnavailable(CardBridgeError):
    """Raised when no CA bundle can be located or downloaded."""


class TransportError(CardBridgeError):
    """Raised when the connection or TLS layer fails before an HTTP status exists."""

    def __init__(self, method: str, url: str, reason: str) -> None:
        super().__init__(f"{method} {url} failed: {reason}")
        self.method = method
        self.url = url
        self.reason = reason


class MalformedResponse(CardBridgeError):
    """Raised when a multi-status body is not well-formed XML."""


class ServiceError(CardBridgeError):
    """Failure carrying the HTTP status and body of the last exchange.

    ``status_code`` is None when the exchange never produced a response.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DiscoveryStepFailed(ServiceError):
    """One discovery strategy did not resolve an address book."""


@dataclass(frozen=True)
class DiscoveryAttempt:
    """Outcome of a single failed discovery strategy."""

    strategy: str
    error: CardBridgeError


class DiscoveryFailed(ServiceError):
    """Raised when every discovery strategy has been exhausted."""

    def __init__(self, attempts: list[DiscoveryAttempt]) -> None:
        status_code: int | None = None
        body = ""
        # Report the most recent attempt that actually got an HTTP response
        for attempt in reversed(attempts):
            if getattr(attempt.error, "status_code", None) is not None:
                status_code = attempt.error.status_code
                body = attempt.error.body
                break
        summary = "; ".join(f"{a.strategy}: {a.error}" for a in attempts) or "no strategies configured"
        super().__init__(
            f"Unable to discover the address book ({summary}). "
            "Check the credentials and service URL.",
            status_code=status_code,
            body=body,
        )
        self.attempts = attempts


class OperationFailed(ServiceError):
    """Base for collection operations that got an unexpected status."""


class FetchFailed(OperationFailed):
    """Raised when the REPORT for all contacts does not return 207."""


class CreateFailed(OperationFailed):
    """Raised when the PUT of a new contact does not return 201."""
