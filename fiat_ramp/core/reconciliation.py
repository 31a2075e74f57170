"""
Transaction reconciler: idempotent ledger upsert for transaction events.

The ledger row for a transaction id is created by the first event and updated
in place by every later one. The owner recorded on first insert is
authoritative; a caller-supplied identity that disagrees is logged, never
trusted.
"""
import asyncio
import uuid
from typing import Optional

import structlog

from fiat_ramp.core.events import TransactionEvent
from fiat_ramp.core.exceptions import IntegrityError, StorageError, UnresolvedIdentity
from fiat_ramp.database.ledger_store import LedgerStore
from fiat_ramp.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class TransactionReconciler:
    """Upserts transaction events into the ledger and reports their owner."""

    def __init__(self, store: LedgerStore, store_timeout: float = 5.0):
        """
        Initialize reconciler.

        Args:
            store: Ledger store
            store_timeout: Seconds allowed per store call before it counts as
                a storage failure
        """
        self.store = store
        self.store_timeout = store_timeout

    async def _candidate_owner(self, event: TransactionEvent) -> str:
        """
        Pick the owner recorded if the transaction turns out to be new.

        Webhooks carry no identity, so look for an existing record sharing one
        of the event identifiers. Allocate a fresh identity when none exists.
        """
        try:
            return await asyncio.wait_for(
                self.store.resolve_user_id(
                    event.transaction_id,
                    event.onramp_transaction_id,
                    event.wallet_address,
                ),
                timeout=self.store_timeout,
            )
        except UnresolvedIdentity:
            user_id = str(uuid.uuid4())
            logger.warning(
                "ledger_owner_allocated",
                transaction_id=event.ledger_key,
                user_id=user_id,
            )
            return user_id
        except asyncio.TimeoutError as e:
            raise StorageError(
                f"Timed out resolving owner of {event.ledger_key}", original_error=e
            ) from e

    async def reconcile(self, event: TransactionEvent, user_id: Optional[str] = None) -> str:
        """
        Upsert the ledger record for an event.

        Args:
            event: Validated transaction event
            user_id: Identity known to the initiating flow, None for webhooks

        Returns:
            str: Owning user identity as stored

        Raises:
            StorageError: If the ledger is unavailable or times out
            IntegrityError: If the ledger accepted the write but returned no owner
        """
        candidate = user_id or await self._candidate_owner(event)

        try:
            owner = await asyncio.wait_for(
                self.store.upsert_transaction(event, candidate),
                timeout=self.store_timeout,
            )
        except asyncio.TimeoutError as e:
            metrics.record_ledger_upsert("storage_error")
            logger.error(
                "ledger_upsert_timeout",
                transaction_id=event.ledger_key,
                timeout_seconds=self.store_timeout,
            )
            raise StorageError(
                f"Timed out upserting transaction {event.ledger_key}", original_error=e
            ) from e
        except StorageError:
            metrics.record_ledger_upsert("storage_error")
            raise
        except IntegrityError:
            metrics.record_ledger_upsert("integrity_error")
            logger.error("ledger_upsert_missing_owner", transaction_id=event.ledger_key)
            raise

        if not owner:
            metrics.record_ledger_upsert("integrity_error")
            logger.error("ledger_upsert_missing_owner", transaction_id=event.ledger_key)
            raise IntegrityError(
                f"Ledger returned no owner for transaction {event.ledger_key}",
                transaction_id=event.ledger_key,
            )

        if user_id and owner != user_id:
            metrics.record_owner_mismatch()
            logger.warning(
                "ledger_owner_mismatch",
                transaction_id=event.ledger_key,
                supplied_user_id=user_id,
                stored_user_id=owner,
            )

        metrics.record_ledger_upsert("success")
        logger.info(
            "transaction_reconciled",
            transaction_id=event.ledger_key,
            user_id=owner,
            status=event.canonical_status.value,
        )
        return owner
