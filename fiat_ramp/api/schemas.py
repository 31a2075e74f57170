"""
Pydantic schemas for API request/response models.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from fiat_ramp.integrations.schemas import InitiateTransactionRequest


class WebhookResponse(BaseModel):
    """Response schema for webhook deliveries."""

    message: str = Field(..., description="Processing result")

    model_config = {"json_schema_extra": {"examples": [{"message": "Webhook received"}]}}


class CheckoutResponse(BaseModel):
    """Response schema for transaction initiation."""

    status: str = Field(..., description="Onramper checkout status")
    transaction_id: str = Field(..., description="Onramper transaction ID")
    user_id: str = Field(..., description="Owner of the transaction as stored in the ledger")
    redirect_url: Optional[str] = Field(default=None, description="Onramp widget URL")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "in_progress",
                    "transaction_id": "01H9KZ4Q6V3X8M2N7P5R0T1W9Y",
                    "user_id": "123e4567-e89b-12d3-a456-426614174000",
                    "redirect_url": "https://buy.moonpay.com/?txId=01H9KZ4Q6V3X8M2N7P5R0T1W9Y",
                }
            ]
        }
    }


class ErrorResponse(BaseModel):
    """Response schema for errors."""

    error: str = Field(..., description="Error message")
    detail: Optional[Any] = Field(default=None, description="Additional details")


class HealthCheckResponse(BaseModel):
    """Response schema for readiness checks."""

    status: str = Field(..., description="Overall health status")
    checks: Dict[str, Any] = Field(..., description="Per-dependency checks")


__all__ = [
    "CheckoutResponse",
    "ErrorResponse",
    "HealthCheckResponse",
    "InitiateTransactionRequest",
    "WebhookResponse",
]
