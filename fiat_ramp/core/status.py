"""
Canonical transaction and verification states.

Onramper reports free-text statuses that differ per onramp. Two independent
mappings normalise them:

- transaction status: total, never fails, unknown values fall back to ``new``
- verification state: partial, only terminal or near-terminal outcomes carry
  an identity decision, everything else raises ``UnsupportedStatus``
"""
from enum import Enum

from .exceptions import UnsupportedStatus


class TransactionStatus(str, Enum):
    """Canonical fiat transaction state stored in the ledger."""

    PENDING = "pending"
    COMPLETED = "completed"
    PAID = "paid"
    FAILED = "failed"
    NEW = "new"


class VerificationState(str, Enum):
    """Canonical identity-verification (KYC) state."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Checked in order; first matching group wins.
_PENDING_MARKERS = ("pending", "in_progress", "processing")
_COMPLETED_MARKERS = ("completed", "confirmed")
_FAILED_MARKERS = ("failed", "error")

_VERIFICATION_MAP = {
    "completed": VerificationState.APPROVED,
    "failed": VerificationState.REJECTED,
    "canceled": VerificationState.REJECTED,
    "pending": VerificationState.PENDING,
}


def map_transaction_status(raw_status: str | None) -> TransactionStatus:
    """
    Map a provider status string onto a canonical transaction status.

    Matching is case-insensitive and substring based, so provider jargon such
    as ``IN_PROGRESS`` or ``payment_failed`` is understood.

    Args:
        raw_status: Status as reported by Onramper (may be empty)

    Returns:
        TransactionStatus: Canonical status, ``NEW`` when unrecognised
    """
    value = (raw_status or "").strip().lower()

    if any(marker in value for marker in _PENDING_MARKERS):
        return TransactionStatus.PENDING
    if any(marker in value for marker in _COMPLETED_MARKERS):
        return TransactionStatus.COMPLETED
    if value == "paid":
        return TransactionStatus.PAID
    if any(marker in value for marker in _FAILED_MARKERS):
        return TransactionStatus.FAILED
    return TransactionStatus.NEW


def map_verification_state(raw_status: str | None) -> VerificationState:
    """
    Map a transaction status onto the verification state it implies.

    Args:
        raw_status: Status as reported by Onramper

    Returns:
        VerificationState: Derived KYC state

    Raises:
        UnsupportedStatus: If the status carries no identity decision
    """
    value = (raw_status or "").strip().lower()
    try:
        return _VERIFICATION_MAP[value]
    except KeyError:
        raise UnsupportedStatus(raw_status or "") from None
