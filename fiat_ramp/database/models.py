"""SQLAlchemy database models for the fiat transaction ledger and KYC sessions."""
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class FiatTransaction(Base):
    """
    Fiat on/off-ramp transaction ledger.

    One row per transaction id. Created by the first reconciled event and
    updated in place by every later event for the same id. ``user_id`` and
    ``created_at`` are never touched after the first insert.
    """

    __tablename__ = "fiat_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    onramp: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    onramp_transaction_id: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", index=True
    )
    country: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    source_currency: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    target_currency: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    in_amount: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False, default=0)
    out_amount: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False, default=0)
    payment_method: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    wallet_address: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", index=True
    )
    transaction_type: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    transaction_status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    raw_status: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    status_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    partner_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("fiat_transactions_uk_transaction_id", "transaction_id", unique=True),
        CheckConstraint(
            "transaction_status IN ('pending', 'completed', 'paid', 'failed', 'new')",
            name="valid_transaction_status",
        ),
        Index("idx_fiat_transactions_user_status", "user_id", "transaction_status"),
    )

    def __repr__(self) -> str:
        """String representation of FiatTransaction."""
        return (
            f"<FiatTransaction(transaction_id={self.transaction_id}, "
            f"user_id={self.user_id}, status={self.transaction_status})>"
        )


class VerificationSession(Base):
    """
    Identity-verification (KYC) status per user.

    Exactly one row per user. Once ``APPROVED`` the status only changes
    through another ``APPROVED`` write.
    """

    __tablename__ = "id_verification_sessions"

    verification_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("id_verification_sessions_user_id_key", "user_id", unique=True),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="valid_verification_status",
        ),
    )

    def __repr__(self) -> str:
        """String representation of VerificationSession."""
        return f"<VerificationSession(user_id={self.user_id}, status={self.status})>"
