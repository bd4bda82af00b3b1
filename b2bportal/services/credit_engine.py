"""Tiered credit reservation and release.

All balance-changing operations lock the company through ``LedgerStore.atomic``,
re-derive availability inside the lock, then write the order/user usage changes
together with one ledger entry. Replays are recognised by idempotency key.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from b2bportal.core.money import ZERO_MONEY, to_money
from b2bportal.core.observability import log_event
from b2bportal.models.company import CompanyAccount, User
from b2bportal.models.credit import CreditTransaction, TransactionType
from b2bportal.models.order import B2BOrder, OUTSTANDING_PAYMENT_STATUSES, OrderStatus
from b2bportal.services.credit_calculator import CompanyCredit, CreditCalculator, UserCredit
from b2bportal.services.credit_errors import (
    InsufficientCreditError,
    InvalidArgumentError,
    LedgerInconsistencyError,
    NotFoundError,
)
from b2bportal.services.ledger_store import LedgerStore
from b2bportal.services.order_repository import OrderRepository

logger = logging.getLogger("b2bportal.credit")

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class TieredCreditValidation:
    can_create: bool
    limiting_factor: str
    required_amount: Decimal
    shortfall: Decimal
    message: str
    company: CompanyCredit
    user: UserCredit

    @property
    def available_credit(self) -> Decimal:
        return min(self.company.available_credit, self.user.user_credit_available)

    def to_error(self) -> InsufficientCreditError:
        return InsufficientCreditError(
            self.message,
            limiting_factor=self.limiting_factor,
            available=self.available_credit,
            required=self.required_amount,
        )


@dataclass(frozen=True)
class CreditMutation:
    applied: bool
    outcome: str
    amount: Decimal
    transaction: CreditTransaction | None = None


@dataclass(frozen=True)
class LedgerReplay:
    company_id: str
    credit_limit: Decimal
    transaction_count: int
    replayed_available: Decimal
    calculated_available: Decimal


def _positive_amount(amount: Decimal | int | float | str) -> Decimal:
    try:
        value = to_money(amount)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidArgumentError("Amount must be a number") from exc
    if value <= ZERO_MONEY:
        raise InvalidArgumentError("Amount must be greater than 0")
    return value


def evaluate_tiers(company: CompanyCredit, user: UserCredit, required: Decimal) -> TieredCreditValidation:
    company_available = company.available_credit
    user_available = user.user_credit_available
    limiting_factor = "company" if company_available <= user_available else "user"
    binding = min(company_available, user_available)
    shortfall = max(to_money(required - binding), ZERO_MONEY)

    if shortfall > ZERO_MONEY:
        tier = "company" if limiting_factor == "company" else "user"
        message = f"Insufficient {tier} credit. Available: ${binding:.2f}, Required: ${required:.2f}"
    else:
        message = "Credit validation passed"

    return TieredCreditValidation(
        can_create=shortfall == ZERO_MONEY,
        limiting_factor=limiting_factor,
        required_amount=required,
        shortfall=shortfall,
        message=message,
        company=company,
        user=user,
    )


class CreditEngine:
    def __init__(self, ledger: LedgerStore, orders: OrderRepository):
        self._ledger = ledger
        self._orders = orders
        self.calculator = CreditCalculator(ledger)

    def validate_tiered_credit(self, company_id: str, user_id: str, amount) -> TieredCreditValidation:
        required = _positive_amount(amount)
        company_credit = self.calculator.calculate_available_credit(company_id)
        user = _owned_by(self._ledger.get_user(user_id), company_id, "User not found")
        return evaluate_tiers(company_credit, self.calculator.user_credit(user, company_credit), required)

    def deduct_tiered_credit(
        self,
        company_id: str,
        user_id: str,
        order_id: str,
        amount,
        reason: str = TransactionType.ORDER_CREATED.value,
        *,
        idempotency_key: str | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> CreditMutation:
        value = _positive_amount(amount)
        key = idempotency_key or f"{order_id}:{reason}"
        with self._ledger.atomic(company_id) as company:
            existing = self._ledger.find_transaction(company_id, key)
            if existing is not None:
                log_event(logger, "credit_duplicate_ignored", company_id=company_id, order_id=order_id, key=key)
                return CreditMutation(applied=False, outcome="duplicate", amount=ZERO_MONEY, transaction=existing)
            order = self._locked_order(order_id, company_id)
            user = self._locked_user(user_id, company_id)
            return self._reserve_locked(
                company,
                user,
                order,
                value,
                reason,
                idempotency_key=key,
                notes=notes,
                created_by=created_by,
            )

    def restore_credit(
        self,
        company_id: str,
        order_id: str,
        amount=None,
        user_id: str | None = None,
        reason: str = TransactionType.ORDER_CANCELLED.value,
        *,
        idempotency_key: str | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> CreditMutation:
        """Release credit reserved for an order, capped at what the ledger holds for it.

        ``amount=None`` releases the whole outstanding reservation.
        """
        value = None if amount is None else _positive_amount(amount)
        key = idempotency_key or f"{order_id}:{reason}"
        with self._ledger.atomic(company_id) as company:
            existing = self._ledger.find_transaction(company_id, key)
            if existing is not None:
                log_event(logger, "credit_duplicate_ignored", company_id=company_id, order_id=order_id, key=key)
                return CreditMutation(applied=False, outcome="duplicate", amount=ZERO_MONEY, transaction=existing)
            return self._release_locked(
                company,
                order_id,
                value,
                user_id,
                reason,
                idempotency_key=key,
                notes=notes,
                created_by=created_by,
            )

    def settle_credit(
        self,
        company_id: str,
        order_id: str,
        amount,
        user_id: str | None = None,
        *,
        idempotency_key: str | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> CreditMutation:
        """Release a reservation because the order was paid for."""
        return self.restore_credit(
            company_id,
            order_id,
            amount,
            user_id,
            TransactionType.PAYMENT_RECEIVED.value,
            idempotency_key=idempotency_key,
            notes=notes or "Payment received",
            created_by=created_by,
        )

    def adjust_reservation(
        self,
        company_id: str,
        user_id: str,
        order_id: str,
        new_total,
        reason: str = TransactionType.ORDER_UPDATED.value,
        *,
        created_by: str | None = None,
    ) -> CreditMutation:
        """Move the order's reservation so it covers the unpaid part of ``new_total``.

        The delta is taken against what the order actually holds, so an order
        whose earlier reservation was refused reserves the full amount once it
        fits. Idempotent by state: replaying the same total finds no difference.
        """
        try:
            target = to_money(new_total)
        except (InvalidOperation, ValueError) as exc:
            raise InvalidArgumentError("Order total must be a number") from exc
        if target < ZERO_MONEY:
            raise InvalidArgumentError("Order total cannot be negative")

        with self._ledger.atomic(company_id) as company:
            order = self._locked_order(order_id, company_id)
            previous_total = to_money(order.order_total)
            desired = max(to_money(target - to_money(order.paid_amount or ZERO_MONEY)), ZERO_MONEY)
            difference = to_money(desired - to_money(order.credit_used or ZERO_MONEY))
            if difference == ZERO_MONEY:
                if previous_total != target:
                    order.order_total = target
                    order.remaining_balance = to_money(target - to_money(order.paid_amount))
                return CreditMutation(applied=False, outcome="no_change", amount=ZERO_MONEY)

            note = f"Order total changed from ${previous_total:.2f} to ${target:.2f}"
            if difference > ZERO_MONEY:
                user = self._locked_user(user_id, company_id)
                mutation = self._reserve_locked(
                    company,
                    user,
                    order,
                    difference,
                    reason,
                    idempotency_key=None,
                    notes=note,
                    created_by=created_by,
                )
            else:
                mutation = self._release_locked(
                    company,
                    order.id,
                    -difference,
                    user_id,
                    reason,
                    idempotency_key=None,
                    notes=note,
                    created_by=created_by,
                )
            order.order_total = target
            order.remaining_balance = to_money(target - to_money(order.paid_amount))
            return mutation

    def set_company_credit_limit(self, company_id: str, credit_limit, *, set_by: str) -> CompanyCredit:
        try:
            limit = to_money(credit_limit)
        except (InvalidOperation, ValueError) as exc:
            raise InvalidArgumentError("Credit limit must be a number") from exc
        if limit < ZERO_MONEY:
            raise InvalidArgumentError("Credit limit cannot be negative")

        with self._ledger.atomic(company_id) as company:
            before = self.calculator.company_credit(company)
            company.credit_limit = limit
            after_available = to_money(limit - before.used_credit)
            self._ledger.append_transaction(
                company_id=company_id,
                user_id=None,
                order_id=None,
                transaction_type=TransactionType.CREDIT_ADJUSTMENT.value,
                credit_amount=ZERO_MONEY,
                previous_balance=before.available_credit,
                new_balance=after_available,
                idempotency_key=None,
                notes=f"Credit limit changed from ${before.credit_limit:.2f} to ${limit:.2f}",
                created_by=set_by,
            )
            return CompanyCredit(
                company_id=company_id,
                credit_limit=limit,
                used_credit=before.used_credit,
                pending_credit=before.pending_credit,
                available_credit=after_available,
            )

    def set_user_credit_limit(self, user_id: str, credit_limit, *, set_by: str) -> UserCredit:
        user = self._ledger.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.company_id:
            raise InvalidArgumentError("User is not assigned to a company")

        limit = None
        if credit_limit is not None:
            try:
                limit = to_money(credit_limit)
            except (InvalidOperation, ValueError) as exc:
                raise InvalidArgumentError("Credit limit must be a number") from exc
            if limit < ZERO_MONEY:
                raise InvalidArgumentError("Credit limit cannot be negative")

        with self._ledger.atomic(user.company_id) as company:
            user = self._locked_user(user_id, company.id)
            used = to_money(user.user_credit_used or ZERO_MONEY)
            if limit is not None and limit < used:
                raise InvalidArgumentError(
                    f"Credit limit ${limit:.2f} is below current usage ${used:.2f}"
                )
            previous = user.user_credit_limit
            user.user_credit_limit = limit
            company_credit = self.calculator.company_credit(company)
            self._ledger.append_transaction(
                company_id=company.id,
                user_id=user.id,
                order_id=None,
                transaction_type=TransactionType.CREDIT_ADJUSTMENT.value,
                credit_amount=ZERO_MONEY,
                previous_balance=company_credit.available_credit,
                new_balance=company_credit.available_credit,
                idempotency_key=None,
                notes=f"User credit limit changed from {_limit_label(previous)} to {_limit_label(limit)}",
                created_by=set_by,
            )
            return self.calculator.user_credit(user, company_credit)

    def verify_ledger(self, company_id: str) -> LedgerReplay:
        company = self._ledger.get_company(company_id)
        if company is None:
            raise NotFoundError("Company not found")
        limit = to_money(company.credit_limit or ZERO_MONEY)
        transactions = self._ledger.list_transactions(company_id, newest_first=False)
        replayed = limit
        for transaction in transactions:
            replayed += to_money(transaction.credit_amount)
        replayed = to_money(replayed)
        calculated = self.calculator.company_credit(company).available_credit
        if replayed != calculated:
            log_event(
                logger,
                "ledger_inconsistency",
                level=logging.ERROR,
                company_id=company_id,
                replayed=replayed,
                calculated=calculated,
            )
            raise LedgerInconsistencyError(
                "Credit ledger does not match outstanding orders",
                company_id=company_id,
                expected=replayed,
                actual=calculated,
            )
        return LedgerReplay(
            company_id=company_id,
            credit_limit=limit,
            transaction_count=len(transactions),
            replayed_available=replayed,
            calculated_available=calculated,
        )

    def _reserve_locked(
        self,
        company: CompanyAccount,
        user: User,
        order: B2BOrder,
        amount: Decimal,
        reason: str,
        *,
        idempotency_key: str | None,
        notes: str | None,
        created_by: str | None,
    ) -> CreditMutation:
        if (
            order.payment_status not in OUTSTANDING_PAYMENT_STATUSES
            or order.order_status == OrderStatus.CANCELLED.value
        ):
            raise InvalidArgumentError("Order is not open for credit reservation")

        company_credit = self.calculator.company_credit(company)
        validation = evaluate_tiers(company_credit, self.calculator.user_credit(user, company_credit), amount)
        if not validation.can_create:
            raise validation.to_error()

        order.credit_used = to_money(to_money(order.credit_used or ZERO_MONEY) + amount)
        order.user_credit_used = to_money(to_money(order.user_credit_used or ZERO_MONEY) + amount)
        user.user_credit_used = to_money(to_money(user.user_credit_used or ZERO_MONEY) + amount)

        transaction = self._ledger.append_transaction(
            company_id=company.id,
            user_id=user.id,
            order_id=order.id,
            transaction_type=reason,
            credit_amount=-amount,
            previous_balance=company_credit.available_credit,
            new_balance=to_money(company_credit.available_credit - amount),
            idempotency_key=idempotency_key,
            notes=notes or f"Credit reserved for order {order.order_number}",
            created_by=created_by or user.id,
        )
        log_event(
            logger,
            "credit_reserved",
            company_id=company.id,
            user_id=user.id,
            order_id=order.id,
            amount=amount,
            reason=reason,
        )
        return CreditMutation(applied=True, outcome="reserved", amount=amount, transaction=transaction)

    def _release_locked(
        self,
        company: CompanyAccount,
        order_id: str,
        amount: Decimal | None,
        user_id: str | None,
        reason: str,
        *,
        idempotency_key: str | None,
        notes: str | None,
        created_by: str | None,
    ) -> CreditMutation:
        outstanding = self._ledger.order_net_reserved(company.id, order_id)
        order = self._orders.lock(order_id)
        if outstanding <= ZERO_MONEY or order is None or order.company_id != company.id:
            log_event(
                logger,
                "ledger_inconsistency",
                level=logging.WARNING,
                company_id=company.id,
                order_id=order_id,
                reason=reason,
                requested=amount,
                reserved=outstanding,
            )
            return CreditMutation(applied=False, outcome="nothing_reserved", amount=ZERO_MONEY)

        release = outstanding if amount is None else min(amount, outstanding)
        company_credit = self.calculator.company_credit(company)

        user_share = min(release, to_money(order.user_credit_used or ZERO_MONEY))
        order.credit_used = max(to_money(to_money(order.credit_used or ZERO_MONEY) - release), ZERO_MONEY)
        order.user_credit_used = max(to_money(to_money(order.user_credit_used or ZERO_MONEY) - user_share), ZERO_MONEY)

        user = self._ledger.lock_user(user_id or order.created_by_user_id)
        if user is not None:
            user.user_credit_used = max(
                to_money(to_money(user.user_credit_used or ZERO_MONEY) - user_share),
                ZERO_MONEY,
            )

        transaction = self._ledger.append_transaction(
            company_id=company.id,
            user_id=user.id if user is not None else user_id,
            order_id=order_id,
            transaction_type=reason,
            credit_amount=release,
            previous_balance=company_credit.available_credit,
            new_balance=to_money(company_credit.available_credit + release),
            idempotency_key=idempotency_key,
            notes=notes or f"Credit released for order {order.order_number}",
            created_by=created_by or user_id or SYSTEM_ACTOR,
        )
        log_event(
            logger,
            "credit_released",
            company_id=company.id,
            order_id=order_id,
            amount=release,
            reason=reason,
        )
        return CreditMutation(applied=True, outcome="released", amount=release, transaction=transaction)

    def _locked_order(self, order_id: str, company_id: str) -> B2BOrder:
        return _owned_by(self._orders.lock(order_id), company_id, "Order not found")

    def _locked_user(self, user_id: str, company_id: str) -> User:
        return _owned_by(self._ledger.lock_user(user_id), company_id, "User not found")


def _owned_by(row, company_id: str, message: str):
    if row is None or row.company_id != company_id:
        raise NotFoundError(message)
    return row


def _limit_label(value: Decimal | None) -> str:
    return "unlimited" if value is None else f"${to_money(value):.2f}"
