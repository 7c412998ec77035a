"""
Custom exceptions for the avatar relay.

These exceptions are intentionally simple and descriptive.
They are used across:

  - core/api/        (vendor HTTP clients)
  - core/avatar/     (stream orchestration)
  - runtime/         (stores, agents, HTTP routes)

Every exception carries the HTTP status it maps to, a short ``error``
summary and a ``details`` string. The FastAPI app renders them as
``{"error": ..., "details": ...}``.

Placing them at the project root (exceptions/) avoids circular imports and
keeps exception types consistent across modules.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all errors surfaced to the browser client."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, details: str, error: Optional[str] = None):
        self.details = details
        if error is not None:
            self.error = error
        super().__init__(details)


class ValidationError(RelayError):
    """
    Raised when a request field is missing or malformed.

    Example:
        POST /api/avatar/stream/{id}/start without ``session_id``
    """

    status_code = 400
    error = "Invalid request"


class NotFoundError(RelayError):
    """
    Raised for an unknown chat session, stream or test-stream handle.
    """

    status_code = 404
    error = "Not found"


class RejectedError(RelayError):
    """
    Raised by a route when a "send"-style vendor call reported failure
    (the orchestrator returned False), e.g. "Failed to start stream".
    """

    status_code = 400
    error = "Request rejected"


class VendorError(RelayError):
    """
    Raised when a vendor answers with a non-2xx status or a payload that
    cannot be used (missing ``id``, undecodable JSON, ...).

    The endpoint, status and body are kept for diagnosis.
    """

    status_code = 502
    error = "Vendor service error"

    def __init__(
        self,
        endpoint: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.status = status
        self.body = body
        parts = [f"Vendor call failed: {endpoint}"]
        if status is not None:
            parts.append(f"status={status}")
        if reason:
            parts.append(reason)
        if body:
            parts.append(f"body={body}")
        super().__init__(" ".join(parts))


class TransientNetworkError(RelayError):
    """
    Raised when a vendor could not be reached (connection refused, timeout)
    after the bounded number of retries.
    """

    status_code = 503
    error = "Vendor unreachable"

    def __init__(self, endpoint: str, attempts: int, cause: Exception):
        self.endpoint = endpoint
        self.attempts = attempts
        self.cause = cause
        msg = (
            f"Network failure calling {endpoint} after {attempts} attempt(s): "
            f"{type(cause).__name__}: {cause}"
        )
        super().__init__(msg)


class ServiceError(RelayError):
    """
    Wraps an unexpected exception caught by a route handler so that the
    client still receives the exception message.
    """

    status_code = 500
