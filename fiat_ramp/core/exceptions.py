"""
Exception taxonomy for the webhook and reconciliation pipeline.

Every exception carries the HTTP status the API layer answers with when the
error aborts a request. Errors raised on the KYC path never reach the caller;
the webhook processor logs them and still answers 200.
"""
from typing import Any, Dict, Optional


class RampError(Exception):
    """Base exception for all fiat ramp errors."""

    http_status: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses."""
        return {"error": self.message, "type": self.__class__.__name__}


class AuthenticationError(RampError):
    """Webhook signature missing or invalid. Always terminal."""

    http_status = 401


class ValidationError(RampError):
    """Webhook payload malformed or incomplete. Always terminal."""

    http_status = 400


class StorageError(RampError):
    """
    Ledger store unavailable, failing or timed out.

    Terminal on the reconciliation path, logged and swallowed on the KYC path.
    """

    http_status = 500

    def __init__(
        self, message: str, original_error: Optional[Exception] = None, **context: Any
    ):
        super().__init__(message, **context)
        self.original_error = original_error


class IntegrityError(RampError):
    """Ledger store broke its own contract, e.g. a write returned no owner."""

    http_status = 500


class UnresolvedIdentity(RampError):
    """No ledger record matched any of the supplied identifiers."""

    http_status = 404


class UnsupportedStatus(RampError):
    """Transaction status carries no identity-verification decision."""

    http_status = 422

    def __init__(self, status: str):
        super().__init__(f"Status {status!r} does not map to a verification state", status=status)
        self.status = status


class UpstreamError(RampError):
    """Onramper API call failed or returned an unusable response."""

    http_status = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.status_code = status_code
        self.original_error = original_error
