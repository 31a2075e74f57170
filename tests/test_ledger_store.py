"""
Integration tests for the SQLAlchemy ledger store.

Runs the real upsert statements against SQLite (aiosqlite), which supports the
same ON CONFLICT ... DO UPDATE ... RETURNING form used on PostgreSQL.
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fiat_ramp.core.events import TransactionEvent
from fiat_ramp.core.exceptions import StorageError, UnresolvedIdentity
from fiat_ramp.core.status import VerificationState
from fiat_ramp.database.ledger_store import SQLAlchemyLedgerStore
from fiat_ramp.database.models import FiatTransaction, VerificationSession


def make_event(status: str = "pending", **overrides: object) -> TransactionEvent:
    fields = {
        "transaction_id": "TX42",
        "onramp_transaction_id": "mp_7f3a",
        "onramp": "moonpay",
        "source_currency": "eur",
        "target_currency": "btc",
        "in_amount": Decimal("100"),
        "wallet_address": "bc1qexample",
        "transaction_type": "buy",
        "status": status,
    }
    fields.update(overrides)
    return TransactionEvent(**fields)


async def fetch_transactions(store: SQLAlchemyLedgerStore) -> list:
    async with store.session_factory() as session:
        result = await session.execute(select(FiatTransaction))
        return list(result.scalars().all())


class TestSQLAlchemyLedgerStore:
    """Test suite for SQLAlchemyLedgerStore."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_insert_records_owner_and_canonical_status(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        owner = await sqlite_store.upsert_transaction(make_event("IN_PROGRESS"), "user-1")

        rows = await fetch_transactions(sqlite_store)
        assert owner == "user-1"
        assert len(rows) == 1
        assert rows[0].transaction_status == "pending"
        assert rows[0].raw_status == "IN_PROGRESS"
        assert rows[0].transaction_type == "BUY"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_upsert_keeps_first_owner_and_updates_fields(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        await sqlite_store.upsert_transaction(make_event("pending"), "user-1")

        owner = await sqlite_store.upsert_transaction(
            make_event("completed", out_amount=Decimal("0.0021"), transaction_hash="0xabc"),
            "user-2",
        )

        rows = await fetch_transactions(sqlite_store)
        assert owner == "user-1"
        assert len(rows) == 1
        assert rows[0].user_id == "user-1"
        assert rows[0].transaction_status == "completed"
        assert rows[0].transaction_hash == "0xabc"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_resolve_by_transaction_id(self, sqlite_store: SQLAlchemyLedgerStore) -> None:
        await sqlite_store.upsert_transaction(make_event(), "user-1")

        assert await sqlite_store.resolve_user_id("TX42", "", "") == "user-1"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_processor_id_then_internal_id_share_one_row(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        """A row first keyed on the processor id takes the internal id when it arrives."""
        await sqlite_store.upsert_transaction(
            make_event("pending", transaction_id="", onramp_transaction_id="O1"), "user-1"
        )

        owner = await sqlite_store.upsert_transaction(
            make_event("completed", transaction_id="T1", onramp_transaction_id="O1"), "user-2"
        )

        rows = await fetch_transactions(sqlite_store)
        assert owner == "user-1"
        assert [(row.transaction_id, row.transaction_status) for row in rows] == [
            ("T1", "completed")
        ]
        assert await sqlite_store.resolve_user_id("T1", "", "") == "user-1"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_processor_id_only_updates_existing_row(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        await sqlite_store.upsert_transaction(
            make_event("pending", transaction_id="T1", onramp_transaction_id="O1"), "user-1"
        )

        owner = await sqlite_store.upsert_transaction(
            make_event("failed", transaction_id="", onramp_transaction_id="O1"), "user-2"
        )

        rows = await fetch_transactions(sqlite_store)
        assert owner == "user-1"
        assert [(row.transaction_id, row.transaction_status) for row in rows] == [
            ("T1", "failed")
        ]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_resolve_prefers_transaction_id_over_wallet(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        await sqlite_store.upsert_transaction(
            make_event(transaction_id="TX1", onramp_transaction_id="mp_1"), "user-wallet"
        )
        await sqlite_store.upsert_transaction(
            make_event(transaction_id="TX2", onramp_transaction_id="mp_2"), "user-tx"
        )

        assert await sqlite_store.resolve_user_id("TX2", "", "bc1qexample") == "user-tx"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_resolve_ignores_empty_identifiers(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        """Empty identifiers never match rows that stored an empty value."""
        await sqlite_store.upsert_transaction(make_event(wallet_address=""), "user-1")

        with pytest.raises(UnresolvedIdentity):
            await sqlite_store.resolve_user_id("", "", "")
        with pytest.raises(UnresolvedIdentity):
            await sqlite_store.resolve_user_id("TX-unknown", "", "")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_verification_ratchet(self, sqlite_store: SQLAlchemyLedgerStore) -> None:
        assert (
            await sqlite_store.upsert_verification_state("user-1", VerificationState.PENDING)
            is VerificationState.PENDING
        )
        assert (
            await sqlite_store.upsert_verification_state("user-1", VerificationState.APPROVED)
            is VerificationState.APPROVED
        )
        assert (
            await sqlite_store.upsert_verification_state("user-1", VerificationState.REJECTED)
            is VerificationState.APPROVED
        )
        assert (
            await sqlite_store.upsert_verification_state("user-1", VerificationState.APPROVED)
            is VerificationState.APPROVED
        )

        async with sqlite_store.session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(VerificationSession))
            status = await session.scalar(
                select(VerificationSession.status).where(VerificationSession.user_id == "user-1")
            )
        assert count == 1
        assert status == "APPROVED"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rejected_can_be_superseded(self, sqlite_store: SQLAlchemyLedgerStore) -> None:
        await sqlite_store.upsert_verification_state("user-1", VerificationState.REJECTED)

        stored = await sqlite_store.upsert_verification_state("user-1", VerificationState.PENDING)

        assert stored is VerificationState.PENDING

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_database_errors_become_storage_errors(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        async with sqlite_store.session_factory() as session:
            await session.run_sync(
                lambda sync_session: FiatTransaction.__table__.drop(sync_session.connection())
            )
            await session.commit()

        with pytest.raises(StorageError):
            await sqlite_store.upsert_transaction(make_event(), "user-1")
        with pytest.raises(StorageError):
            await sqlite_store.resolve_user_id("TX42", "", "")

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_upserts_leave_single_row(
        self, sqlite_store: SQLAlchemyLedgerStore
    ) -> None:
        owners = await asyncio.gather(
            *[
                sqlite_store.upsert_transaction(make_event("completed"), f"user-{i}")
                for i in range(5)
            ]
        )

        rows = await fetch_transactions(sqlite_store)
        assert len(rows) == 1
        assert set(owners) == {rows[0].user_id}
