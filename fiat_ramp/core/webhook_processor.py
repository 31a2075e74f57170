"""
Webhook processor: per-request orchestration of the reconciliation pipeline.

Received -> SignatureChecked -> Parsed -> Reconciled -> KYCSynced -> Responded

- bad signature        -> Rejected (401), body never parsed
- bad payload          -> Rejected (400)
- ledger write failure -> Failed (500), KYC sync not attempted; Onramper
  redelivers on non-2xx
- KYC sync failure     -> Degraded (200), logged; the transaction is already
  durably recorded so a redelivery would gain nothing
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from fiat_ramp.core.exceptions import (
    IntegrityError,
    StorageError,
    UnresolvedIdentity,
    UnsupportedStatus,
    ValidationError,
)
from fiat_ramp.core.identity import IdentitySync
from fiat_ramp.core.normalizer import normalize_payload
from fiat_ramp.core.reconciliation import TransactionReconciler
from fiat_ramp.core.signature import verify_signature
from fiat_ramp.core.status import VerificationState, map_verification_state
from fiat_ramp.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class PipelineState(str, Enum):
    """Final state of a webhook request."""

    RESPONDED = "responded"
    DEGRADED = "degraded"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class WebhookOutcome:
    """Result of processing one webhook delivery."""

    state: PipelineState
    http_status: int
    message: str
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    user_id: Optional[str] = None
    kyc_status: Optional[VerificationState] = None

    @property
    def metric_label(self) -> str:
        """Label recorded in the webhook outcome counter."""
        return f"{self.state.value}_{self.reason}" if self.reason else self.state.value


class WebhookProcessor:
    """Runs one webhook delivery through verify, parse, reconcile and KYC sync."""

    def __init__(
        self,
        webhook_secret: str,
        reconciler: TransactionReconciler,
        identity_sync: IdentitySync,
    ):
        """
        Initialize processor.

        Args:
            webhook_secret: Shared secret used to sign webhook bodies
            reconciler: Ledger reconciler
            identity_sync: KYC status writer
        """
        self.webhook_secret = webhook_secret
        self.reconciler = reconciler
        self.identity_sync = identity_sync

    async def process(self, body: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Process a raw webhook delivery.

        Args:
            body: Raw request body
            signature: Signature header value

        Returns:
            WebhookOutcome: Final pipeline state and the HTTP status to answer with
        """
        start_time = time.time()
        outcome = await self._run(body, signature)
        metrics.record_webhook(outcome.metric_label, time.time() - start_time)
        return outcome

    async def _run(self, body: bytes, signature: Optional[str]) -> WebhookOutcome:
        if not verify_signature(body, signature, self.webhook_secret):
            logger.error("webhook_signature_invalid", signature_present=bool(signature))
            return WebhookOutcome(
                state=PipelineState.REJECTED,
                http_status=401,
                message="Invalid signature",
                reason="signature",
            )

        try:
            event = normalize_payload(body)
        except ValidationError as e:
            return WebhookOutcome(
                state=PipelineState.REJECTED,
                http_status=400,
                message=e.message,
                reason="payload",
            )

        log = logger.bind(transaction_id=event.ledger_key, onramp=event.onramp)
        log.info(
            "webhook_received",
            status=event.status,
            status_date=event.status_date.isoformat() if event.status_date else None,
        )

        try:
            user_id = await self.reconciler.reconcile(event)
        except (StorageError, IntegrityError) as e:
            log.error("webhook_ledger_write_failed", error=e.message, error_type=type(e).__name__)
            return WebhookOutcome(
                state=PipelineState.FAILED,
                http_status=500,
                message="Failed to store transaction",
                reason="ledger",
                transaction_id=event.ledger_key,
            )

        outcome = WebhookOutcome(
            state=PipelineState.RESPONDED,
            http_status=200,
            message="Webhook received",
            transaction_id=event.ledger_key,
            user_id=user_id,
        )

        try:
            state = map_verification_state(event.status)
            outcome.kyc_status = await self.identity_sync.sync(event, state, user_id=user_id)
            metrics.record_kyc_sync(outcome.kyc_status.value.lower())
        except UnsupportedStatus as e:
            metrics.record_kyc_sync("unsupported_status")
            log.warning("kyc_status_unsupported", status=e.status, user_id=user_id)
        except UnresolvedIdentity as e:
            metrics.record_kyc_sync("unresolved")
            log.warning("kyc_user_unresolved", error=e.message)
            outcome.state = PipelineState.DEGRADED
        except StorageError as e:
            metrics.record_kyc_sync("storage_error")
            log.error("kyc_status_update_failed", user_id=user_id, error=e.message)
            outcome.state = PipelineState.DEGRADED
        except Exception:
            metrics.record_kyc_sync("error")
            log.exception("kyc_status_update_unexpected_error", user_id=user_id)
            outcome.state = PipelineState.DEGRADED

        return outcome
