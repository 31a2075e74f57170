"""
Pytest configuration and fixtures.
"""
import json
from typing import Any, AsyncGenerator, Callable, Dict
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from fiat_ramp.api.main import create_app
from fiat_ramp.config import Settings
from fiat_ramp.core.signature import compute_signature
from fiat_ramp.database.ledger_store import SQLAlchemyLedgerStore
from fiat_ramp.database.models import Base
from fiat_ramp.integrations.onramper_client import OnramperClient

from .fakes import WEBHOOK_SECRET, InMemoryLedgerStore


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        onramper_base_url="https://api.onramper.test",
        onramper_api_key="pk_test_fake_key",
        onramper_webhook_secret=WEBHOOK_SECRET,
        database_url="sqlite+aiosqlite:///:memory:",
        store_timeout_seconds=0.5,
        app_name="fiat-ramp-relay-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    """Fresh in-memory ledger."""
    return InMemoryLedgerStore()


@pytest.fixture
def onramper_client() -> AsyncMock:
    """Mocked Onramper client."""
    return AsyncMock(spec=OnramperClient)


@pytest.fixture
def sign() -> Callable[[bytes], str]:
    """Sign a webhook body with the test secret."""

    def _sign(body: bytes) -> str:
        return compute_signature(body, WEBHOOK_SECRET)

    return _sign


@pytest.fixture
def webhook_payload() -> Dict[str, Any]:
    """Sample Onramper webhook body."""
    return {
        "country": "de",
        "inAmount": 100,
        "onramp": "moonpay",
        "onrampTransactionId": "mp_7f3a",
        "outAmount": 0.0021,
        "paymentMethod": "creditcard",
        "partnerContext": "",
        "sourceCurrency": "eur",
        "status": "completed",
        "statusDate": "2024-03-01T12:00:00Z",
        "targetCurrency": "btc",
        "transactionId": "TX42",
        "transactionType": "buy",
        "transactionHash": "0xabc",
        "walletAddress": "bc1qexample",
    }


@pytest.fixture
def encode() -> Callable[[Dict[str, Any]], bytes]:
    """Serialize a payload the way Onramper sends it."""

    def _encode(payload: Dict[str, Any]) -> bytes:
        return json.dumps(payload).encode("utf-8")

    return _encode


@pytest_asyncio.fixture
async def client(
    test_settings: Settings,
    ledger_store: InMemoryLedgerStore,
    onramper_client: AsyncMock,
) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    app = create_app(test_settings, ledger_store=ledger_store, onramper_client=onramper_client)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Any) -> AsyncGenerator[SQLAlchemyLedgerStore, Any]:
    """Ledger store backed by a throwaway SQLite database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SQLAlchemyLedgerStore(session_factory)

    await engine.dispose()
