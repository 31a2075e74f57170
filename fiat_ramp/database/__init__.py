"""Database package for the fiat transaction ledger."""
from .connection import close_db, get_session_factory, init_db
from .ledger_store import LedgerStore, SQLAlchemyLedgerStore
from .models import Base, FiatTransaction, VerificationSession

__all__ = [
    "Base",
    "FiatTransaction",
    "VerificationSession",
    "LedgerStore",
    "SQLAlchemyLedgerStore",
    "close_db",
    "get_session_factory",
    "init_db",
]
