from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from b2bportal.db.base import Base


class TransactionType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_UPDATED = "order_updated"
    ORDER_CANCELLED = "order_cancelled"
    CREDIT_RESERVED = "credit_reserved"
    CREDIT_RELEASED = "credit_released"
    PAYMENT_RECEIVED = "payment_received"
    CREDIT_ADJUSTMENT = "credit_adjustment"


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_id: Mapped[str] = mapped_column(String(36), ForeignKey("company_accounts.id"), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    # Plain reference: ledger entries outlive the orders they describe.
    order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    previous_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    new_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("company_id", "sequence", name="uq_credit_transactions_company_sequence"),
        UniqueConstraint("company_id", "idempotency_key", name="uq_credit_transactions_company_idempotency"),
        Index("ix_credit_transactions_company_order", "company_id", "order_id"),
    )
