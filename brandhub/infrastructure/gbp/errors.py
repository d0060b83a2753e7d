"""
Error Classifier - Vendor Failure Taxonomy
==========================================

Maps an HTTP status (plus the response body, for messages only) into the
small set of outcomes callers act on. classify() is pure: it never looks at
call history, so the fallback engine and the tests can rely on it alone.

RETRY POLICY (for callers):
- TransientError, RateLimited: safe to retry with backoff
- AuthExpired: refresh the credential, retry the operation once
- everything else: needs a configuration fix or user action
"""

from enum import Enum
from typing import Any, Optional


class Classification(Enum):
    """Outcome of a single vendor call."""
    SUCCESS = "success"
    AUTH_UNAVAILABLE = "auth_unavailable"
    AUTH_EXPIRED = "auth_expired"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    MALFORMED_RESPONSE = "malformed_response"


# Failures that justify trying the next candidate endpoint
TERMINAL = frozenset({
    Classification.PERMISSION_DENIED,
    Classification.NOT_FOUND,
    Classification.INVALID_REQUEST,
})

_STATUS_MAP = {
    400: Classification.INVALID_REQUEST,
    401: Classification.AUTH_EXPIRED,
    403: Classification.PERMISSION_DENIED,
    404: Classification.NOT_FOUND,
    429: Classification.RATE_LIMITED,
}


def classify(status: Optional[int], body: Any = None) -> Classification:
    """
    Classify one vendor response.

    Args:
        status: HTTP status code, or None when no response arrived
            (timeout, connection failure).
        body: Decoded response body. Not used for the decision.
    """
    if status is None:
        return Classification.TRANSIENT
    if 200 <= status < 300:
        return Classification.SUCCESS
    if status in _STATUS_MAP:
        return _STATUS_MAP[status]
    if 400 <= status < 500:
        # 409 conflict, 412 precondition etc. are caller-side problems too
        return Classification.INVALID_REQUEST
    return Classification.TRANSIENT


def describe(body: Any) -> str:
    """Extract a short human-readable message from a vendor error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message") or ""
            status = error.get("status") or ""
            return f"{status}: {message}" if status and message else (message or status)
        if isinstance(error, str):
            # OAuth token endpoint: {"error": "invalid_grant", "error_description": "..."}
            description = body.get("error_description")
            return f"{error}: {description}" if description else error
    if isinstance(body, str):
        return body.strip()[:200]
    return ""


class BusinessProfileError(Exception):
    """Base exception for Business Profile integration failures."""

    classification = Classification.TRANSIENT
    retryable = False

    def __init__(self, detail: str = "", status: Optional[int] = None, operation: Optional[str] = None):
        self.detail = detail
        self.status = status
        self.operation = operation
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.classification.value]
        if self.operation:
            parts.append(f"during {self.operation}")
        if self.status is not None:
            parts.append(f"(HTTP {self.status})")
        message = " ".join(parts)
        return f"{message}: {self.detail}" if self.detail else message


class AuthUnavailable(BusinessProfileError):
    """No usable credential at all; the user must (re-)authorize."""
    classification = Classification.AUTH_UNAVAILABLE


class AuthExpired(BusinessProfileError):
    """Credential needs a refresh; the operation may be retried once afterwards."""
    classification = Classification.AUTH_EXPIRED


class PermissionDenied(BusinessProfileError):
    """Authenticated but not authorized for the resource."""
    classification = Classification.PERMISSION_DENIED


class NotFound(BusinessProfileError):
    """Resource or endpoint absent on this account/region."""
    classification = Classification.NOT_FOUND


class InvalidRequest(BusinessProfileError):
    """Malformed parameters (a caller bug)."""
    classification = Classification.INVALID_REQUEST


class RateLimited(BusinessProfileError):
    """Vendor quota exhausted; back off and retry later."""
    classification = Classification.RATE_LIMITED
    retryable = True


class TransientError(BusinessProfileError):
    """Network failure or 5xx; safe to retry with backoff."""
    classification = Classification.TRANSIENT
    retryable = True


class MalformedResponse(BusinessProfileError):
    """A successful payload that could not be mapped to canonical records."""
    classification = Classification.MALFORMED_RESPONSE


_EXCEPTIONS = {
    cls.classification: cls
    for cls in (
        AuthUnavailable,
        AuthExpired,
        PermissionDenied,
        NotFound,
        InvalidRequest,
        RateLimited,
        TransientError,
        MalformedResponse,
    )
}


def error_for(
    classification: Classification,
    detail: str = "",
    status: Optional[int] = None,
    operation: Optional[str] = None,
) -> BusinessProfileError:
    """Build the exception matching a failure classification."""
    if classification is Classification.SUCCESS:
        raise ValueError("SUCCESS is not an error classification")
    return _EXCEPTIONS[classification](detail, status=status, operation=operation)
