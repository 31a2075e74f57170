"""
TransactionEvent: one reported state of a fiat transaction.

The model doubles as the wire schema of the Onramper webhook body, so it
accepts the camelCase field names Onramper sends as well as the snake_case
attribute names used internally.
"""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .status import TransactionStatus, map_transaction_status

_TEXT_FIELDS = (
    "onramp",
    "onramp_transaction_id",
    "transaction_id",
    "source_currency",
    "target_currency",
    "payment_method",
    "country",
    "wallet_address",
    "status",
    "transaction_type",
)


class TransactionEvent(BaseModel):
    """Canonical, validated transaction event ready for reconciliation."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    onramp: str = ""
    onramp_transaction_id: str = ""
    transaction_id: str = ""
    source_currency: str = ""
    target_currency: str = ""
    in_amount: Decimal = Decimal("0")
    out_amount: Decimal = Decimal("0")
    payment_method: str = ""
    country: str = ""
    wallet_address: str = ""
    status: str = ""
    status_date: Optional[datetime] = None
    transaction_type: str = ""
    transaction_hash: Optional[str] = None
    partner_context: Optional[str] = Field(default=None)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def default_text(cls, v: Any) -> Any:
        """Treat null as empty and trim surrounding whitespace."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("in_amount", "out_amount", mode="before")
    @classmethod
    def default_amount(cls, v: Any) -> Any:
        """Treat null as zero."""
        return Decimal("0") if v is None else v

    @field_validator("status_date", "transaction_hash", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Empty strings mean absent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("partner_context", mode="before")
    @classmethod
    def serialize_partner_context(cls, v: Any) -> Any:
        """Partner context is free-form; structured values are kept as JSON text."""
        if v is None or isinstance(v, str):
            return v or None
        return json.dumps(v, sort_keys=True, default=str)

    @model_validator(mode="after")
    def check_identifiers(self) -> TransactionEvent:
        """Reject events that cannot be keyed or carry no status."""
        if not self.transaction_id and not self.onramp_transaction_id:
            raise ValueError("transactionId or onrampTransactionId is required")
        if not self.status:
            raise ValueError("status is required")
        return self

    @property
    def ledger_key(self) -> str:
        """Natural key of the ledger record this event upserts."""
        return self.transaction_id or self.onramp_transaction_id

    @property
    def canonical_status(self) -> TransactionStatus:
        """Canonical transaction status derived from the raw status."""
        return map_transaction_status(self.status)

    def __repr__(self) -> str:
        """String representation of TransactionEvent."""
        return (
            f"<TransactionEvent(key={self.ledger_key}, onramp={self.onramp}, "
            f"status={self.status})>"
        )
