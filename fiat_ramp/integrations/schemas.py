"""Pydantic models for the Onramper checkout intent API."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fiat_ramp.core.events import TransactionEvent


class _OnramperModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Wallet(_OnramperModel):
    address: str = ""


class InitiateTransactionRequest(_OnramperModel):
    """Checkout intent request forwarded to Onramper."""

    onramp: str = Field(..., description="Onramp provider id")
    source: str = Field(..., description="Source currency code")
    destination: str = Field(..., description="Destination currency code")
    amount: float = Field(..., gt=0, description="Amount in source currency")
    type: str = Field(default="buy", description="Transaction direction (buy/sell)")
    payment_method: str = Field(..., description="Payment method id")
    network: Optional[str] = Field(default=None, description="Destination network")
    uuid: Optional[str] = Field(default=None, description="Client-generated session id")
    wallet: Wallet = Field(default_factory=Wallet)
    country: Optional[str] = Field(default=None, description="ISO country code")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "onramp": "moonpay",
                    "source": "eur",
                    "destination": "usdc_ethereum",
                    "amount": 100,
                    "type": "buy",
                    "paymentMethod": "creditcard",
                    "wallet": {"address": "0x1234567890abcdef1234567890abcdef12345678"},
                    "country": "de",
                }
            ]
        }
    )


class SessionInformation(_OnramperModel):
    onramp: str = ""
    source: str = ""
    destination: str = ""
    amount: Decimal = Decimal("0")
    type: str = ""
    payment_method: str = ""
    country: str = ""
    wallet: Wallet = Field(default_factory=Wallet)


class TransactionInformation(_OnramperModel):
    transaction_id: str = ""
    url: str = ""


class CheckoutIntent(_OnramperModel):
    """``message`` object of an Onramper checkout intent response."""

    status: str = ""
    session_information: SessionInformation = Field(default_factory=SessionInformation)
    transaction_information: TransactionInformation = Field(
        default_factory=TransactionInformation
    )

    def to_event(self) -> TransactionEvent:
        """Build the ledger event recorded when a checkout intent is created."""
        session = self.session_information
        return TransactionEvent(
            onramp=session.onramp,
            onramp_transaction_id=self.transaction_information.transaction_id,
            transaction_id=self.transaction_information.transaction_id,
            source_currency=session.source,
            target_currency=session.destination,
            in_amount=session.amount,
            out_amount=Decimal("0"),
            payment_method=session.payment_method,
            country=session.country,
            wallet_address=session.wallet.address,
            status=self.status or "new",
            status_date=datetime.now(timezone.utc),
            transaction_type=session.type,
        )


class CheckoutIntentResponse(_OnramperModel):
    message: CheckoutIntent
