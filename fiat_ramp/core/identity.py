"""Identity sync: propagate derived KYC states to the verification record."""
import asyncio
from typing import Optional

import structlog

from fiat_ramp.core.events import TransactionEvent
from fiat_ramp.core.exceptions import StorageError
from fiat_ramp.core.status import VerificationState
from fiat_ramp.database.ledger_store import LedgerStore

logger = structlog.get_logger(__name__)


class IdentitySync:
    """
    Writes verification states through the ratchet.

    An APPROVED user stays APPROVED: the store only applies PENDING or
    REJECTED while the stored state is not APPROVED.
    """

    def __init__(self, store: LedgerStore, store_timeout: float = 5.0):
        self.store = store
        self.store_timeout = store_timeout

    async def _call(self, operation: str, coro):
        """Await a store call under the configured timeout."""
        try:
            return await asyncio.wait_for(coro, timeout=self.store_timeout)
        except asyncio.TimeoutError as e:
            raise StorageError(
                f"Timed out during {operation}", original_error=e, operation=operation
            ) from e

    async def resolve_user(self, event: TransactionEvent) -> str:
        """
        Find the owner of the transaction an event refers to.

        Raises:
            UnresolvedIdentity: If no ledger record matches
            StorageError: If the store fails or times out
        """
        return await self._call(
            "resolve_user_id",
            self.store.resolve_user_id(
                event.transaction_id,
                event.onramp_transaction_id,
                event.wallet_address,
            ),
        )

    async def sync(
        self,
        event: TransactionEvent,
        state: VerificationState,
        user_id: Optional[str] = None,
    ) -> VerificationState:
        """
        Record a derived verification state for the event's owner.

        Args:
            event: Event the state was derived from
            state: Derived verification state
            user_id: Owner if already known from reconciliation

        Returns:
            VerificationState: State stored after the write, which is the
                prior state when the ratchet suppressed the update

        Raises:
            UnresolvedIdentity: If the owner cannot be resolved
            StorageError: If the store fails or times out
        """
        if not user_id:
            user_id = await self.resolve_user(event)

        stored = await self._call(
            "upsert_verification_state",
            self.store.upsert_verification_state(user_id, state),
        )

        if stored != state:
            logger.info(
                "kyc_update_suppressed",
                user_id=user_id,
                requested_status=state.value,
                stored_status=stored.value,
            )
        else:
            logger.info(
                "kyc_status_updated",
                user_id=user_id,
                original_status=event.status,
                kyc_status=stored.value,
            )
        return stored
