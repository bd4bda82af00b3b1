from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from b2bportal.db.base import Base


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


OUTSTANDING_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value)
IN_FLIGHT_ORDER_STATUSES = (
    OrderStatus.DRAFT.value,
    OrderStatus.SUBMITTED.value,
    OrderStatus.PROCESSING.value,
)


class B2BOrder(Base):
    __tablename__ = "b2b_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    shop_id: Mapped[str] = mapped_column(String(36), ForeignKey("stores.id"), index=True)
    company_id: Mapped[str] = mapped_column(String(36), ForeignKey("company_accounts.id"), index=True)
    created_by_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    shopify_order_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    order_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    credit_used: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    user_credit_used: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        server_default=PaymentStatus.PENDING.value,
    )
    order_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.DRAFT.value,
        server_default=OrderStatus.DRAFT.value,
    )
    requires_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("shop_id", "shopify_order_id", name="uq_b2b_orders_shop_shopify_order"),
        Index("ix_b2b_orders_company_payment_status", "company_id", "payment_status"),
        Index("ix_b2b_orders_company_created_at", "company_id", "created_at"),
    )


class OrderPayment(Base):
    __tablename__ = "order_payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("b2b_orders.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="received", server_default="received")
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
