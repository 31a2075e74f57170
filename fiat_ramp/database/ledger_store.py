"""
Ledger Store: persistence contract consumed by the reconciliation pipeline.

Three operations, each atomic at the database level:

- upsert_transaction: INSERT ... ON CONFLICT (transaction_id) DO UPDATE,
  returning the owner stored on the row
- resolve_user_id: best-effort owner lookup by any non-empty identifier
- upsert_verification_state: conditional upsert implementing the KYC ratchet
  (an APPROVED row is only overwritten by another APPROVED write)
"""
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fiat_ramp.core.events import TransactionEvent
from fiat_ramp.core.exceptions import IntegrityError, StorageError, UnresolvedIdentity
from fiat_ramp.core.status import VerificationState
from fiat_ramp.database.models import FiatTransaction, VerificationSession

logger = structlog.get_logger(__name__)

# Columns overwritten on every redelivery; user_id and created_at are excluded.
MUTABLE_TRANSACTION_COLUMNS = (
    "onramp",
    "onramp_transaction_id",
    "country",
    "source_currency",
    "target_currency",
    "in_amount",
    "out_amount",
    "payment_method",
    "wallet_address",
    "transaction_type",
    "transaction_status",
    "raw_status",
    "status_date",
    "transaction_hash",
    "partner_context",
)

_INSERT_BY_DIALECT: Dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class LedgerStore(ABC):
    """Narrow interface to the transaction ledger and verification records."""

    @abstractmethod
    async def upsert_transaction(self, event: TransactionEvent, user_id: str) -> str:
        """
        Insert or update the ledger record for ``event.ledger_key``.

        Args:
            event: Validated transaction event
            user_id: Owner to record if the transaction is new

        Returns:
            str: Owner identity as stored (authoritative)

        Raises:
            StorageError: If the store is unavailable
            IntegrityError: If the write succeeded but returned no owner
        """

    @abstractmethod
    async def resolve_user_id(
        self, transaction_id: str, onramp_transaction_id: str, wallet_address: str
    ) -> str:
        """
        Find the owner of an existing ledger record.

        Raises:
            UnresolvedIdentity: If no record matches any non-empty identifier
            StorageError: If the store is unavailable
        """

    @abstractmethod
    async def upsert_verification_state(
        self, user_id: str, state: VerificationState
    ) -> VerificationState:
        """
        Write a verification state unless the stored state is already APPROVED.

        Returns:
            VerificationState: State stored after the write

        Raises:
            StorageError: If the store is unavailable
        """


class SQLAlchemyLedgerStore(LedgerStore):
    """LedgerStore backed by SQLAlchemy async (PostgreSQL, or SQLite for tests)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize the store.

        Args:
            session_factory: Async session factory bound to the ledger database
        """
        self.session_factory = session_factory

    @staticmethod
    def _insert_for(session: AsyncSession) -> Callable[..., Any]:
        """Pick the dialect-specific INSERT supporting ON CONFLICT."""
        dialect = session.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise StorageError(f"Dialect {dialect!r} does not support atomic upserts") from None

    @staticmethod
    def _transaction_values(event: TransactionEvent, user_id: str) -> Dict[str, Any]:
        """Column values for a ledger row built from an event."""
        return {
            "id": uuid.uuid4(),
            "transaction_id": event.ledger_key,
            "user_id": user_id,
            "onramp": event.onramp,
            "onramp_transaction_id": event.onramp_transaction_id,
            "country": event.country,
            "source_currency": event.source_currency,
            "target_currency": event.target_currency,
            "in_amount": event.in_amount,
            "out_amount": event.out_amount,
            "payment_method": event.payment_method,
            "wallet_address": event.wallet_address,
            "transaction_type": event.transaction_type.upper(),
            "transaction_status": event.canonical_status.value,
            "raw_status": event.status,
            "status_date": event.status_date,
            "transaction_hash": event.transaction_hash,
            "partner_context": event.partner_context,
        }

    @staticmethod
    async def _existing_key(session: AsyncSession, event: TransactionEvent) -> Optional[str]:
        """
        Key of the row already recording this transaction, if any.

        The internal id and the processor id together identify a transaction,
        so a row keyed on either one matches.
        """
        conditions = [FiatTransaction.transaction_id == event.ledger_key]
        if event.onramp_transaction_id:
            conditions.append(
                FiatTransaction.onramp_transaction_id == event.onramp_transaction_id
            )
            conditions.append(FiatTransaction.transaction_id == event.onramp_transaction_id)

        precedence = case(
            *[(condition, rank) for rank, condition in enumerate(conditions)],
            else_=len(conditions),
        )
        result = await session.execute(
            select(FiatTransaction.transaction_id)
            .where(or_(*conditions))
            .order_by(precedence, FiatTransaction.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert_transaction(self, event: TransactionEvent, user_id: str) -> str:
        async with self.session_factory() as session:
            try:
                insert = self._insert_for(session)
                key = await self._existing_key(session, event) or event.ledger_key

                values = self._transaction_values(event, user_id)
                values["transaction_id"] = key
                stmt = insert(FiatTransaction).values(**values)
                update_columns = {
                    name: getattr(stmt.excluded, name) for name in MUTABLE_TRANSACTION_COLUMNS
                }
                if event.transaction_id:
                    # Rows first keyed on the processor id take the internal id once known.
                    update_columns["transaction_id"] = case(
                        (
                            FiatTransaction.transaction_id
                            == FiatTransaction.onramp_transaction_id,
                            event.transaction_id,
                        ),
                        else_=FiatTransaction.transaction_id,
                    )
                update_columns["updated_at"] = func.now()
                stmt = stmt.on_conflict_do_update(
                    index_elements=["transaction_id"],
                    set_=update_columns,
                ).returning(FiatTransaction.user_id)

                result = await session.execute(stmt)
                owner = result.scalar_one_or_none()
                await session.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error(
                    "ledger_upsert_storage_error",
                    transaction_id=event.ledger_key,
                    error=str(e),
                )
                raise StorageError(
                    f"Failed to upsert transaction {event.ledger_key}: {e}",
                    original_error=e,
                ) from e

        if not owner:
            raise IntegrityError(
                f"Ledger returned no owner for transaction {event.ledger_key}",
                transaction_id=event.ledger_key,
            )
        return str(owner)

    async def resolve_user_id(
        self, transaction_id: str, onramp_transaction_id: str, wallet_address: str
    ) -> str:
        conditions = []
        if transaction_id:
            conditions.append(FiatTransaction.transaction_id == transaction_id)
        if onramp_transaction_id:
            conditions.append(FiatTransaction.onramp_transaction_id == onramp_transaction_id)
        if wallet_address:
            conditions.append(FiatTransaction.wallet_address == wallet_address)
        if not conditions:
            raise UnresolvedIdentity("No transaction identifiers supplied")

        # Earlier identifiers take precedence, then the oldest record.
        precedence = case(
            *[(condition, rank) for rank, condition in enumerate(conditions)],
            else_=len(conditions),
        )
        stmt = (
            select(FiatTransaction.user_id)
            .where(or_(*conditions))
            .order_by(precedence, FiatTransaction.created_at)
            .limit(1)
        )

        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                user_id = result.scalar_one_or_none()
            except (SQLAlchemyError, OSError) as e:
                raise StorageError(f"Failed to resolve user: {e}", original_error=e) from e

        if not user_id:
            raise UnresolvedIdentity(
                "No transaction found for identifiers",
                transaction_id=transaction_id,
                onramp_transaction_id=onramp_transaction_id,
                wallet_address=wallet_address,
            )
        return str(user_id)

    async def upsert_verification_state(
        self, user_id: str, state: VerificationState
    ) -> VerificationState:
        async with self.session_factory() as session:
            try:
                insert = self._insert_for(session)
                stmt = insert(VerificationSession).values(
                    verification_session_id=uuid.uuid4(),
                    user_id=user_id,
                    status=state.value,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id"],
                    set_={"status": stmt.excluded.status, "updated_at": func.now()},
                    where=or_(
                        VerificationSession.status != VerificationState.APPROVED.value,
                        stmt.excluded.status == VerificationState.APPROVED.value,
                    ),
                ).returning(VerificationSession.status)

                result = await session.execute(stmt)
                stored = result.scalar_one_or_none()
                if stored is None:
                    # Suppressed by the ratchet; report what is stored.
                    current = await session.execute(
                        select(VerificationSession.status).where(
                            VerificationSession.user_id == user_id
                        )
                    )
                    stored = current.scalar_one()
                await session.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error(
                    "verification_upsert_storage_error",
                    user_id=user_id,
                    status=state.value,
                    error=str(e),
                )
                raise StorageError(
                    f"Failed to update verification state for {user_id}: {e}",
                    original_error=e,
                ) from e

        return VerificationState(stored)
