"""Webhook signature verification: HMAC-SHA256 hex digest over the raw body.

Security contract:
- Comparison uses hmac.compare_digest() (constant time)
- Empty secret -> verification always fails (fail-closed)
- Verification runs on the exact bytes received, before any parsing
"""
import hashlib
import hmac
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    """
    Compute the signature Onramper sends for a webhook body.

    Args:
        body: Raw request body
        secret: Shared webhook secret

    Returns:
        str: Lowercase hex HMAC-SHA256 digest
    """
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify an Onramper webhook signature.

    Args:
        body: Raw request body bytes
        signature: Value of the signature header
        secret: Shared webhook secret

    Returns:
        bool: True if signature is valid
    """
    if not secret:
        logger.error("webhook_secret_missing")
        return False
    if not signature:
        return False

    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))
