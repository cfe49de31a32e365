"""Intercom errors and their boundary-safe serialization.

Arbitrary exceptions cannot cross a context boundary, so failures travel as
a bare message (or ``[message, errors]`` when sub-errors exist) and are
rebuilt on the receiving side as a generic :class:`IntercomError`. The
original exception class is intentionally lost.
"""

from __future__ import annotations

from typing import Any

from xtwallet.utils.exceptions import ErrorCategory, XTWalletError

DEFAULT_ERROR_MESSAGE = "Unexpected error occurred"


class IntercomError(XTWalletError):
    """Generic error reconstructed from a serialized error payload."""

    def __init__(
        self,
        message: str,
        errors: list[Any] | None = None,
        *,
        code: str = "INTERCOM_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
    ):
        details = {"errors": errors} if errors else {}
        super().__init__(message, code=code, category=category, details=details)
        self.errors = errors

    def __str__(self) -> str:
        return self.message


class ChannelUnavailable(IntercomError):
    """The transport could not accept a send (receiving context unreachable)."""

    def __init__(self, message: str = "Receiving context is not reachable"):
        super().__init__(message, code="CHANNEL_UNAVAILABLE", category=ErrorCategory.UNAVAILABLE)


class ClientClosed(IntercomError):
    """The owning context was torn down while the request was pending."""

    def __init__(self, message: str = "Intercom client closed"):
        super().__init__(message, code="CLIENT_CLOSED", category=ErrorCategory.RECOVERABLE)


class RequestTimeout(IntercomError):
    """No response arrived within the caller's deadline."""

    def __init__(self, req_id: int, timeout_seconds: float):
        super().__init__(
            f"Request {req_id} timed out after {timeout_seconds}s",
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
        )
        self.req_id = req_id
        self.timeout_seconds = timeout_seconds


class CapabilityFailure(IntercomError):
    """Raised by a privileged capability; message and sub-errors reach the caller."""

    def __init__(self, message: str, errors: list[Any] | None = None):
        super().__init__(message, errors, code="CAPABILITY_FAILURE")


class UnsupportedRequest(IntercomError):
    """No request handler in the privileged context claimed the request."""

    def __init__(self, request_type: Any = None):
        label = request_type if request_type is not None else "unknown"
        super().__init__(f"Unsupported request: {label}", code="UNSUPPORTED_REQUEST", category=ErrorCategory.VALIDATION)


def serialize_error(err: Any) -> str | list[Any]:
    """Convert any failure into the structural-copy-safe error shape."""
    message = getattr(err, "message", None)
    if not isinstance(message, str) or not message:
        message = str(err) if isinstance(err, BaseException) and str(err) else DEFAULT_ERROR_MESSAGE
    errors = getattr(err, "errors", None)
    if isinstance(errors, (list, tuple)) and len(errors) > 0:
        return [message, [serialize_error(e) if isinstance(e, BaseException) else e for e in errors]]
    return message


def deserialize_error(data: Any) -> IntercomError:
    """Rebuild a generic error from a serialized error payload."""
    if isinstance(data, list):
        message = data[0] if data and isinstance(data[0], str) else DEFAULT_ERROR_MESSAGE
        errors = data[1] if len(data) > 1 and isinstance(data[1], list) else None
        return IntercomError(message, errors)
    if isinstance(data, str) and data:
        return IntercomError(data)
    return IntercomError(DEFAULT_ERROR_MESSAGE)
