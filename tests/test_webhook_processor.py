"""
Unit tests for the webhook processor.
"""
import json
from typing import Any, Callable, Dict
from unittest.mock import AsyncMock

import pytest

from fiat_ramp.core.identity import IdentitySync
from fiat_ramp.core.reconciliation import TransactionReconciler
from fiat_ramp.core.status import VerificationState
from fiat_ramp.core.webhook_processor import PipelineState, WebhookProcessor

from .fakes import WEBHOOK_SECRET, InMemoryLedgerStore


def make_processor(store: InMemoryLedgerStore) -> WebhookProcessor:
    return WebhookProcessor(
        webhook_secret=WEBHOOK_SECRET,
        reconciler=TransactionReconciler(store),
        identity_sync=IdentitySync(store),
    )


class TestWebhookProcessor:
    """Test suite for WebhookProcessor."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_completed_event_responds_and_approves(
        self,
        ledger_store: InMemoryLedgerStore,
        webhook_payload: Dict[str, Any],
        encode: Callable[[Dict[str, Any]], bytes],
        sign: Callable[[bytes], str],
    ) -> None:
        body = encode(webhook_payload)

        outcome = await make_processor(ledger_store).process(body, sign(body))

        assert outcome.state is PipelineState.RESPONDED
        assert outcome.http_status == 200
        assert outcome.transaction_id == "TX42"
        assert outcome.kyc_status is VerificationState.APPROVED
        assert ledger_store.verification[outcome.user_id] is VerificationState.APPROVED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_signature_never_parses_body(
        self, ledger_store: InMemoryLedgerStore
    ) -> None:
        outcome = await make_processor(ledger_store).process(b"{not json", "deadbeef")

        assert outcome.state is PipelineState.REJECTED
        assert outcome.http_status == 401
        assert outcome.metric_label == "rejected_signature"
        assert ledger_store.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, ledger_store: InMemoryLedgerStore) -> None:
        outcome = await make_processor(ledger_store).process(b"{}", None)

        assert outcome.http_status == 401

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_payload_rejected_with_400(
        self, ledger_store: InMemoryLedgerStore, sign: Callable[[bytes], str]
    ) -> None:
        body = b'{"status": "completed"}'

        outcome = await make_processor(ledger_store).process(body, sign(body))

        assert outcome.state is PipelineState.REJECTED
        assert outcome.http_status == 400
        assert "transactionId" in outcome.message
        assert ledger_store.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ledger_failure_skips_kyc(
        self,
        ledger_store: InMemoryLedgerStore,
        webhook_payload: Dict[str, Any],
        encode: Callable[[Dict[str, Any]], bytes],
        sign: Callable[[bytes], str],
    ) -> None:
        ledger_store.fail_upsert = True
        body = encode(webhook_payload)

        outcome = await make_processor(ledger_store).process(body, sign(body))

        assert outcome.state is PipelineState.FAILED
        assert outcome.http_status == 500
        assert "upsert_verification_state" not in ledger_store.calls

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unsupported_status_still_responds(
        self,
        ledger_store: InMemoryLedgerStore,
        webhook_payload: Dict[str, Any],
        sign: Callable[[bytes], str],
    ) -> None:
        body = json.dumps({**webhook_payload, "status": "paid"}).encode()

        outcome = await make_processor(ledger_store).process(body, sign(body))

        assert outcome.state is PipelineState.RESPONDED
        assert outcome.http_status == 200
        assert outcome.kyc_status is None
        assert ledger_store.verification == {}
        assert ledger_store.transactions["TX42"].event.status == "paid"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_kyc_storage_failure_degrades_to_200(
        self,
        ledger_store: InMemoryLedgerStore,
        webhook_payload: Dict[str, Any],
        encode: Callable[[Dict[str, Any]], bytes],
        sign: Callable[[bytes], str],
    ) -> None:
        ledger_store.fail_verification = True
        body = encode(webhook_payload)

        outcome = await make_processor(ledger_store).process(body, sign(body))

        assert outcome.state is PipelineState.DEGRADED
        assert outcome.http_status == 200
        assert "TX42" in ledger_store.transactions

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_kyc_error_degrades_to_200(
        self,
        ledger_store: InMemoryLedgerStore,
        webhook_payload: Dict[str, Any],
        encode: Callable[[Dict[str, Any]], bytes],
        sign: Callable[[bytes], str],
    ) -> None:
        identity_sync = AsyncMock(spec=IdentitySync)
        identity_sync.sync.side_effect = RuntimeError("boom")
        processor = WebhookProcessor(
            webhook_secret=WEBHOOK_SECRET,
            reconciler=TransactionReconciler(ledger_store),
            identity_sync=identity_sync,
        )
        body = encode(webhook_payload)

        outcome = await processor.process(body, sign(body))

        assert outcome.state is PipelineState.DEGRADED
        assert outcome.http_status == 200

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_secret_rejects_everything(
        self,
        ledger_store: InMemoryLedgerStore,
        webhook_payload: Dict[str, Any],
        encode: Callable[[Dict[str, Any]], bytes],
    ) -> None:
        from fiat_ramp.core.signature import compute_signature

        processor = WebhookProcessor(
            webhook_secret="",
            reconciler=TransactionReconciler(ledger_store),
            identity_sync=IdentitySync(ledger_store),
        )
        body = encode(webhook_payload)

        outcome = await processor.process(body, compute_signature(body, ""))

        assert outcome.http_status == 401
        assert ledger_store.calls == []
