from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from b2bportal.core.id_utils import generate_id, generate_order_number
from b2bportal.core.money import ZERO_MONEY, to_money
from b2bportal.models.order import B2BOrder, OrderPayment
from b2bportal.services.credit_errors import DuplicateOrderError


class OrderRepository(Protocol):
    def get(self, order_id: str) -> B2BOrder | None:
        ...

    def lock(self, order_id: str) -> B2BOrder | None:
        ...

    def get_by_external(self, shop_id: str, shopify_order_id: str) -> B2BOrder | None:
        ...

    def create(
        self,
        *,
        shop_id: str,
        company_id: str,
        created_by_user_id: str,
        order_total: Decimal,
        payment_status: str,
        order_status: str,
        shopify_order_id: str | None = None,
        paid_amount: Decimal = ZERO_MONEY,
        notes: str | None = None,
    ) -> B2BOrder:
        ...

    def save(self, order: B2BOrder) -> B2BOrder:
        ...

    def delete(self, order: B2BOrder) -> None:
        ...

    def add_payment(
        self,
        order: B2BOrder,
        *,
        amount: Decimal,
        method: str | None,
        received_at: datetime,
    ) -> OrderPayment:
        ...

    def list_recent(self, company_id: str, *, user_id: str | None = None, limit: int = 5) -> list[B2BOrder]:
        ...


class SqlOrderRepository:
    def __init__(self, db: Session):
        self._db = db

    def get(self, order_id: str) -> B2BOrder | None:
        return self._db.execute(select(B2BOrder).where(B2BOrder.id == order_id)).scalar_one_or_none()

    def lock(self, order_id: str) -> B2BOrder | None:
        return self._db.execute(
            select(B2BOrder)
            .where(B2BOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_external(self, shop_id: str, shopify_order_id: str) -> B2BOrder | None:
        return self._db.execute(
            select(B2BOrder).where(
                B2BOrder.shop_id == shop_id,
                B2BOrder.shopify_order_id == shopify_order_id,
            )
        ).scalar_one_or_none()

    def create(
        self,
        *,
        shop_id: str,
        company_id: str,
        created_by_user_id: str,
        order_total: Decimal,
        payment_status: str,
        order_status: str,
        shopify_order_id: str | None = None,
        paid_amount: Decimal = ZERO_MONEY,
        notes: str | None = None,
    ) -> B2BOrder:
        total = to_money(order_total)
        paid = to_money(paid_amount)
        order = B2BOrder(
            id=generate_id(),
            order_number=generate_order_number(),
            shop_id=shop_id,
            company_id=company_id,
            created_by_user_id=created_by_user_id,
            shopify_order_id=shopify_order_id,
            order_total=total,
            credit_used=ZERO_MONEY,
            user_credit_used=ZERO_MONEY,
            paid_amount=paid,
            remaining_balance=to_money(total - paid),
            payment_status=payment_status,
            order_status=order_status,
            requires_review=False,
            notes=notes,
        )
        self._db.add(order)
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise DuplicateOrderError("Order already recorded for this store") from exc
        return order

    def save(self, order: B2BOrder) -> B2BOrder:
        self._db.add(order)
        self._db.commit()
        return order

    def delete(self, order: B2BOrder) -> None:
        self._db.delete(order)
        self._db.commit()

    def add_payment(
        self,
        order: B2BOrder,
        *,
        amount: Decimal,
        method: str | None,
        received_at: datetime,
    ) -> OrderPayment:
        payment = OrderPayment(
            id=generate_id(),
            order_id=order.id,
            amount=to_money(amount),
            method=method,
            status="received",
            received_at=received_at,
        )
        self._db.add(payment)
        self._db.flush()
        return payment

    def list_recent(self, company_id: str, *, user_id: str | None = None, limit: int = 5) -> list[B2BOrder]:
        stmt = select(B2BOrder).where(B2BOrder.company_id == company_id)
        if user_id is not None:
            stmt = stmt.where(B2BOrder.created_by_user_id == user_id)
        stmt = stmt.order_by(B2BOrder.created_at.desc(), B2BOrder.id.desc()).limit(limit)
        return list(self._db.execute(stmt).scalars().all())
