"""
API routes for the fiat ramp relay.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from fiat_ramp.config import Settings
from fiat_ramp.core.exceptions import IntegrityError, StorageError, UpstreamError
from fiat_ramp.core.reconciliation import TransactionReconciler
from fiat_ramp.core.webhook_processor import WebhookProcessor
from fiat_ramp.integrations.onramper_client import OnramperClient
from fiat_ramp.monitoring.health import HealthCheck

from .schemas import (
    CheckoutResponse,
    ErrorResponse,
    HealthCheckResponse,
    InitiateTransactionRequest,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
webhook_router = APIRouter(tags=["webhooks"])
transaction_router = APIRouter(prefix="/transactions", tags=["transactions"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


def get_reconciler(request: Request) -> TransactionReconciler:
    return request.app.state.reconciler


def get_onramper_client(request: Request) -> OnramperClient:
    return request.app.state.onramper_client


def get_health_check(request: Request) -> HealthCheck:
    return request.app.state.health_check


@webhook_router.post(
    "/webhook",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Onramper webhook endpoint",
    description="Receive Onramper transaction status notifications",
)
async def onramper_webhook(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    Handle an Onramper webhook delivery.

    The raw body is read before anything else so the signature is checked
    over the exact bytes Onramper signed.
    """
    body = await request.body()
    signature = request.headers.get(settings.webhook_signature_header)

    outcome = await processor.process(body, signature)

    if outcome.http_status != status.HTTP_200_OK:
        raise HTTPException(status_code=outcome.http_status, detail=outcome.message)

    return {"message": outcome.message}


@transaction_router.post(
    "/checkout",
    response_model=CheckoutResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Initiate a transaction",
    description="Create an Onramper checkout intent and record it for the user",
)
async def initiate_transaction(
    payload: InitiateTransactionRequest,
    user_id: Optional[str] = Query(default=None, description="Initiating user identity"),
    client: OnramperClient = Depends(get_onramper_client),
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> Dict[str, Any]:
    """
    Initiate a transaction on behalf of a known user.

    The ledger record is created with the supplied identity; if the
    transaction was already recorded for someone else the stored owner wins.
    """
    if not user_id or not user_id.strip():
        logger.warning("api_checkout_missing_user_id")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id is required")
    if not payload.wallet.address.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="wallet address required"
        )

    try:
        intent = await client.initiate_transaction(payload)
    except UpstreamError as e:
        logger.error("api_checkout_upstream_error", error=e.message, user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to initiate transaction",
        )

    event = intent.to_event()
    try:
        owner = await reconciler.reconcile(event, user_id=user_id.strip())
    except (StorageError, IntegrityError) as e:
        logger.error(
            "api_checkout_ledger_error",
            error=e.message,
            user_id=user_id,
            transaction_id=event.ledger_key,
            transaction_status=intent.status,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save transaction",
        )

    logger.info(
        "api_checkout_success",
        transaction_id=event.ledger_key,
        user_id=owner,
        status=intent.status,
    )

    return {
        "status": intent.status,
        "transaction_id": event.ledger_key,
        "user_id": owner,
        "redirect_url": intent.transaction_information.url or None,
    }


@monitoring_router.get("/health/live", summary="Liveness check")
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Kubernetes liveness check."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness check",
)
async def readiness(
    response: Response, health_check: HealthCheck = Depends(get_health_check)
) -> Dict[str, Any]:
    """Kubernetes readiness check; 503 while the ledger database is unreachable."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result


@monitoring_router.get("/metrics", summary="Prometheus metrics")
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
