"""Durable access to company limits, user sub-limits and the credit transaction log.

Every credit mutation runs inside ``LedgerStore.atomic(company_id)``: the company
row is locked, balances are re-read, the mutation and its ledger entry are written,
and the unit commits (or rolls back) as a whole.
"""
from contextlib import contextmanager
from decimal import Decimal
from typing import ContextManager, Iterator, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from b2bportal.core.id_utils import generate_id
from b2bportal.core.money import ZERO_MONEY, to_money
from b2bportal.models.company import CompanyAccount, User
from b2bportal.models.credit import CreditTransaction
from b2bportal.models.order import (
    B2BOrder,
    IN_FLIGHT_ORDER_STATUSES,
    OUTSTANDING_PAYMENT_STATUSES,
    OrderStatus,
)
from b2bportal.models.store import Store
from b2bportal.services.credit_errors import NotFoundError


class LedgerStore(Protocol):
    def atomic(self, company_id: str) -> ContextManager[CompanyAccount]:
        ...

    def get_store(self, store_id: str) -> Store | None:
        ...

    def get_store_by_domain(self, shop_domain: str) -> Store | None:
        ...

    def get_company(self, company_id: str) -> CompanyAccount | None:
        ...

    def get_user(self, user_id: str) -> User | None:
        ...

    def get_user_by_customer(self, shop_id: str, shopify_customer_id: str) -> User | None:
        ...

    def lock_user(self, user_id: str) -> User | None:
        ...

    def list_company_users(self, company_id: str) -> list[User]:
        ...

    def outstanding_credit(self, company_id: str) -> tuple[Decimal, Decimal]:
        ...

    def find_transaction(self, company_id: str, idempotency_key: str) -> CreditTransaction | None:
        ...

    def order_net_reserved(self, company_id: str, order_id: str) -> Decimal:
        ...

    def append_transaction(
        self,
        *,
        company_id: str,
        user_id: str | None,
        order_id: str | None,
        transaction_type: str,
        credit_amount: Decimal,
        previous_balance: Decimal,
        new_balance: Decimal,
        idempotency_key: str | None,
        notes: str | None,
        created_by: str,
    ) -> CreditTransaction:
        ...

    def list_transactions(
        self,
        company_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[CreditTransaction]:
        ...

    def count_transactions(self, company_id: str) -> int:
        ...


class SqlLedgerStore:
    def __init__(self, db: Session):
        self._db = db

    @contextmanager
    def atomic(self, company_id: str) -> Iterator[CompanyAccount]:
        try:
            company = self._db.execute(
                select(CompanyAccount)
                .where(CompanyAccount.id == company_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if company is None:
                raise NotFoundError("Company not found")
            yield company
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

    def get_store(self, store_id: str) -> Store | None:
        return self._db.execute(select(Store).where(Store.id == store_id)).scalar_one_or_none()

    def get_store_by_domain(self, shop_domain: str) -> Store | None:
        normalized = (shop_domain or "").strip().lower()
        if not normalized:
            return None
        return self._db.execute(
            select(Store).where(Store.shop_domain == normalized)
        ).scalar_one_or_none()

    def get_company(self, company_id: str) -> CompanyAccount | None:
        return self._db.execute(
            select(CompanyAccount).where(CompanyAccount.id == company_id)
        ).scalar_one_or_none()

    def get_user(self, user_id: str) -> User | None:
        return self._db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()

    def get_user_by_customer(self, shop_id: str, shopify_customer_id: str) -> User | None:
        return self._db.execute(
            select(User).where(
                User.shop_id == shop_id,
                User.shopify_customer_id == shopify_customer_id,
            )
        ).scalars().first()

    # Re-read under lock; the identity map may hold a copy from before another
    # session committed.
    def lock_user(self, user_id: str) -> User | None:
        return self._db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_company_users(self, company_id: str) -> list[User]:
        return list(
            self._db.execute(
                select(User).where(User.company_id == company_id).order_by(User.created_at.asc())
            ).scalars().all()
        )

    def outstanding_credit(self, company_id: str) -> tuple[Decimal, Decimal]:
        base_filters = (
            B2BOrder.company_id == company_id,
            B2BOrder.payment_status.in_(OUTSTANDING_PAYMENT_STATUSES),
            B2BOrder.order_status != OrderStatus.CANCELLED.value,
        )
        used = self._db.execute(
            select(func.coalesce(func.sum(B2BOrder.credit_used), 0)).where(*base_filters)
        ).scalar_one()
        pending = self._db.execute(
            select(func.coalesce(func.sum(B2BOrder.credit_used), 0)).where(
                *base_filters,
                B2BOrder.order_status.in_(IN_FLIGHT_ORDER_STATUSES),
            )
        ).scalar_one()
        return to_money(used or ZERO_MONEY), to_money(pending or ZERO_MONEY)

    def find_transaction(self, company_id: str, idempotency_key: str) -> CreditTransaction | None:
        return self._db.execute(
            select(CreditTransaction).where(
                CreditTransaction.company_id == company_id,
                CreditTransaction.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def order_net_reserved(self, company_id: str, order_id: str) -> Decimal:
        total = self._db.execute(
            select(func.coalesce(func.sum(CreditTransaction.credit_amount), 0)).where(
                CreditTransaction.company_id == company_id,
                CreditTransaction.order_id == order_id,
            )
        ).scalar_one()
        # Reservations are logged as negative amounts.
        return to_money(-(total or ZERO_MONEY))

    def append_transaction(
        self,
        *,
        company_id: str,
        user_id: str | None,
        order_id: str | None,
        transaction_type: str,
        credit_amount: Decimal,
        previous_balance: Decimal,
        new_balance: Decimal,
        idempotency_key: str | None,
        notes: str | None,
        created_by: str,
    ) -> CreditTransaction:
        last_sequence = self._db.execute(
            select(func.max(CreditTransaction.sequence)).where(
                CreditTransaction.company_id == company_id
            )
        ).scalar_one()
        entry = CreditTransaction(
            id=generate_id(),
            company_id=company_id,
            user_id=user_id,
            order_id=order_id,
            sequence=(last_sequence or 0) + 1,
            transaction_type=transaction_type,
            credit_amount=to_money(credit_amount),
            previous_balance=to_money(previous_balance),
            new_balance=to_money(new_balance),
            idempotency_key=idempotency_key,
            notes=notes[:500] if notes else None,
            created_by=created_by,
        )
        self._db.add(entry)
        self._db.flush()
        return entry

    def list_transactions(
        self,
        company_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = True,
    ) -> list[CreditTransaction]:
        order_by = CreditTransaction.sequence.desc() if newest_first else CreditTransaction.sequence.asc()
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.company_id == company_id)
            .order_by(order_by)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._db.execute(stmt).scalars().all())

    def count_transactions(self, company_id: str) -> int:
        return int(
            self._db.execute(
                select(func.count(CreditTransaction.id)).where(
                    CreditTransaction.company_id == company_id
                )
            ).scalar_one()
        )
