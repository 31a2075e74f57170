"""Parse raw webhook bodies into TransactionEvents."""
import pydantic
import structlog

from .events import TransactionEvent
from .exceptions import ValidationError

logger = structlog.get_logger(__name__)


def _describe(error: pydantic.ValidationError) -> str:
    """Flatten pydantic errors into one line safe to return to the caller."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def normalize_payload(body: bytes) -> TransactionEvent:
    """
    Parse and validate a webhook body.

    Args:
        body: Raw (already authenticated) request body

    Returns:
        TransactionEvent: Validated event

    Raises:
        ValidationError: If the body is not valid JSON, has wrong field types,
            lacks both transaction ids or lacks a status
    """
    if not body or not body.strip():
        raise ValidationError("Empty webhook body")

    try:
        event = TransactionEvent.model_validate_json(body)
    except pydantic.ValidationError as e:
        detail = _describe(e)
        logger.warning("webhook_payload_invalid", error=detail)
        raise ValidationError(f"Invalid webhook payload: {detail}") from e

    logger.debug(
        "webhook_payload_normalized",
        transaction_id=event.ledger_key,
        onramp=event.onramp,
        status=event.status,
    )
    return event
