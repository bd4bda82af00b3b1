"""Order lifecycle coordination.

Maps normalized platform events and portal commands onto order records and credit
operations. Every handler tolerates replays: existing records, recorded ledger keys
and unchanged totals all turn repeated deliveries into no-ops.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from b2bportal.core.config import settings
from b2bportal.core.money import ZERO_MONEY, to_money
from b2bportal.core.observability import log_event
from b2bportal.models.company import CompanyAccount, User
from b2bportal.models.credit import TransactionType
from b2bportal.models.order import B2BOrder, OUTSTANDING_PAYMENT_STATUSES, OrderStatus, PaymentStatus
from b2bportal.models.store import Store
from b2bportal.services.commerce_platform import (
    CommercePlatform,
    DraftLineItem,
    DraftOrderRequest,
    gid_resource,
)
from b2bportal.services.credit_calculator import CompanyCredit, UserCredit
from b2bportal.services.credit_engine import CreditEngine
from b2bportal.services.credit_errors import (
    DuplicateOrderError,
    InsufficientCreditError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamSyncError,
)
from b2bportal.services.ledger_store import LedgerStore
from b2bportal.services.order_repository import OrderRepository
from b2bportal.services.status_mapping import map_platform_statuses

logger = logging.getLogger("b2bportal.orders")

ACTIVE_USER_STATUS = "APPROVED"
NON_CANCELLABLE_STATUSES = (OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value)


@dataclass(frozen=True)
class OrderCreatedEvent:
    shop_domain: str
    order_id: str
    customer_id: str | None
    total_price: Decimal
    financial_status: str | None
    fulfillment_status: str | None


@dataclass(frozen=True)
class OrderPaidEvent:
    shop_domain: str
    order_id: str


@dataclass(frozen=True)
class OrderEditedEvent:
    shop_domain: str
    order_id: str


@dataclass(frozen=True)
class OrderCancelledEvent:
    shop_domain: str
    order_id: str


@dataclass(frozen=True)
class DraftOrderEvent:
    shop_domain: str
    draft_order_id: str
    customer_id: str | None
    total_price: Decimal
    is_b2b: bool
    status: str | None = None
    internal_order_id: str | None = None


@dataclass(frozen=True)
class DraftOrderDeletedEvent:
    shop_domain: str
    draft_order_id: str


@dataclass(frozen=True)
class LifecycleOutcome:
    action: str
    order_id: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class CreateOrderCommand:
    shop_domain: str
    company_id: str
    customer_id: str
    total_amount: Decimal
    line_items: list[DraftLineItem]
    user_id: str | None = None
    shipping_address: dict[str, Any] | None = None
    notes: str | None = None


@dataclass(frozen=True)
class CreatedOrder:
    order: B2BOrder
    draft_order_name: str | None
    company_credit: CompanyCredit


@dataclass(frozen=True)
class CancelledOrder:
    order: B2BOrder
    credit_restored: Decimal
    platform_synced: bool
    platform_errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RecordedPayment:
    order: B2BOrder
    payment_id: str
    amount: Decimal
    credit_released: Decimal


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_outstanding(order: B2BOrder) -> bool:
    return (
        order.payment_status in OUTSTANDING_PAYMENT_STATUSES
        and order.order_status != OrderStatus.CANCELLED.value
    )


def _append_note(order: B2BOrder, note: str) -> None:
    combined = f"{order.notes}\n{note}" if order.notes else note
    order.notes = combined[-500:]


class OrderLifecycleCoordinator:
    def __init__(
        self,
        ledger: LedgerStore,
        orders: OrderRepository,
        engine: CreditEngine,
        platform: CommercePlatform,
    ):
        self._ledger = ledger
        self._orders = orders
        self._engine = engine
        self._platform = platform

    # Platform events

    def handle_order_created(self, event: OrderCreatedEvent) -> LifecycleOutcome:
        store = self._ledger.get_store_by_domain(event.shop_domain)
        if store is None:
            return LifecycleOutcome(action="ignored", detail="unknown_shop")

        existing = self._orders.get_by_external(store.id, event.order_id)
        if existing is not None:
            return LifecycleOutcome(action="duplicate", order_id=existing.id)

        user = self._b2b_user(store, event.customer_id)
        if user is None:
            return LifecycleOutcome(action="ignored", detail="not_b2b_customer")

        payment_status, order_status = map_platform_statuses(event.financial_status, event.fulfillment_status)
        total = to_money(event.total_price)
        paid = total if payment_status == PaymentStatus.PAID else ZERO_MONEY
        try:
            order = self._orders.create(
                shop_id=store.id,
                company_id=user.company_id,
                created_by_user_id=user.id,
                shopify_order_id=event.order_id,
                order_total=total,
                paid_amount=paid,
                payment_status=payment_status.value,
                order_status=order_status.value,
            )
        except DuplicateOrderError:
            return LifecycleOutcome(action="duplicate", detail=event.order_id)

        if payment_status == PaymentStatus.PAID:
            order.paid_at = _now()
            self._orders.save(order)

        if _is_outstanding(order) and to_money(order.remaining_balance) > ZERO_MONEY:
            try:
                self._engine.deduct_tiered_credit(
                    user.company_id,
                    user.id,
                    order.id,
                    order.remaining_balance,
                    TransactionType.ORDER_CREATED.value,
                )
            except InsufficientCreditError as exc:
                return self._flag_for_review(order, exc)
            self._sync_credit_metafields(store, user.id)
        return LifecycleOutcome(action="created", order_id=order.id)

    def handle_order_paid(self, event: OrderPaidEvent) -> LifecycleOutcome:
        store, order = self._find_external(event.shop_domain, event.order_id)
        if order is None:
            return LifecycleOutcome(action="ignored", detail="unknown_order")
        if order.payment_status == PaymentStatus.PAID.value:
            return LifecycleOutcome(action="duplicate", order_id=order.id)

        released = self._release_reservation(order, TransactionType.PAYMENT_RECEIVED.value)
        order.payment_status = PaymentStatus.PAID.value
        order.paid_amount = to_money(order.order_total)
        order.remaining_balance = ZERO_MONEY
        order.paid_at = order.paid_at or _now()
        self._orders.save(order)
        if released > ZERO_MONEY:
            self._sync_credit_metafields(store, order.created_by_user_id)
        return LifecycleOutcome(action="paid", order_id=order.id)

    def handle_order_edited(self, event: OrderEditedEvent) -> LifecycleOutcome:
        store, order = self._find_external(event.shop_domain, event.order_id)
        if order is None:
            return LifecycleOutcome(action="ignored", detail="unknown_order")

        fetched = self._platform.fetch_order(store, event.order_id)
        if fetched.order is None:
            log_event(
                logger,
                "order_refresh_failed",
                level=logging.WARNING,
                order_id=order.id,
                shopify_order_id=event.order_id,
                errors=fetched.errors,
            )
            return LifecycleOutcome(action="ignored", order_id=order.id, detail="upstream_unavailable")

        current = fetched.order
        payment_status, order_status = map_platform_statuses(current.financial_status, current.fulfillment_status)
        total = to_money(current.total_price)
        still_open = (
            payment_status.value in OUTSTANDING_PAYMENT_STATUSES
            and order_status != OrderStatus.CANCELLED
        )

        review_error: InsufficientCreditError | None = None
        credit_changed = False
        if still_open and _is_outstanding(order):
            if total != to_money(order.order_total) or order.requires_review:
                try:
                    mutation = self._engine.adjust_reservation(
                        order.company_id,
                        order.created_by_user_id,
                        order.id,
                        total,
                        TransactionType.ORDER_UPDATED.value,
                    )
                    credit_changed = mutation.applied
                    order.requires_review = False
                except InsufficientCreditError as exc:
                    # Keep the reserved total; statuses still follow upstream.
                    review_error = exc
                    total = to_money(order.order_total)
        elif not still_open:
            reason = (
                TransactionType.PAYMENT_RECEIVED.value
                if payment_status == PaymentStatus.PAID
                else TransactionType.ORDER_CANCELLED.value
            )
            credit_changed = self._release_reservation(order, reason) > ZERO_MONEY

        paid = total if payment_status == PaymentStatus.PAID else to_money(order.paid_amount)
        order.order_total = total
        order.paid_amount = paid
        order.remaining_balance = to_money(total - paid)
        order.payment_status = payment_status.value
        order.order_status = order_status.value
        if payment_status == PaymentStatus.PAID and order.paid_at is None:
            order.paid_at = _now()
        if review_error is not None:
            return self._flag_for_review(order, review_error)
        self._orders.save(order)
        if credit_changed:
            self._sync_credit_metafields(store, order.created_by_user_id)
        return LifecycleOutcome(action="updated", order_id=order.id)

    def handle_order_cancelled(self, event: OrderCancelledEvent) -> LifecycleOutcome:
        store, order = self._find_external(event.shop_domain, event.order_id)
        if order is None:
            return LifecycleOutcome(action="ignored", detail="unknown_order")
        if order.order_status == OrderStatus.CANCELLED.value:
            return LifecycleOutcome(action="duplicate", order_id=order.id)

        released = self._release_reservation(order, TransactionType.ORDER_CANCELLED.value)
        order.order_status = OrderStatus.CANCELLED.value
        order.payment_status = PaymentStatus.CANCELLED.value
        order.remaining_balance = to_money(to_money(order.order_total) - to_money(order.paid_amount))
        self._orders.save(order)
        if released > ZERO_MONEY:
            self._sync_credit_metafields(store, order.created_by_user_id)
        return LifecycleOutcome(action="cancelled", order_id=order.id)

    def handle_draft_order_upserted(self, event: DraftOrderEvent) -> LifecycleOutcome:
        if not event.is_b2b:
            return LifecycleOutcome(action="ignored", detail="not_b2b")
        if not event.customer_id:
            return LifecycleOutcome(action="ignored", detail="no_customer")

        store = self._ledger.get_store_by_domain(event.shop_domain)
        if store is None:
            return LifecycleOutcome(action="ignored", detail="unknown_shop")
        user = self._b2b_user(store, event.customer_id)
        if user is None:
            return LifecycleOutcome(action="ignored", detail="not_b2b_customer")

        order = self._orders.get_by_external(store.id, event.draft_order_id)
        if order is None and event.internal_order_id:
            order = self._link_portal_order(store, event)

        if (event.status or "").lower() == "completed":
            if order is None:
                return LifecycleOutcome(action="ignored", detail="unknown_order")
            return self._close_draft(store, order, "Draft order completed")

        if order is not None:
            if not _is_outstanding(order):
                return LifecycleOutcome(action="ignored", order_id=order.id, detail="order_closed")
            try:
                mutation = self._engine.adjust_reservation(
                    order.company_id,
                    order.created_by_user_id,
                    order.id,
                    event.total_price,
                    TransactionType.ORDER_UPDATED.value,
                )
            except InsufficientCreditError as exc:
                return self._flag_for_review(order, exc)
            if order.requires_review:
                order.requires_review = False
                _append_note(order, f"Credit reserved for ${to_money(order.credit_used):.2f}")
                self._orders.save(order)
                log_event(logger, "order_review_cleared", order_id=order.id, company_id=order.company_id)
                self._sync_credit_metafields(store, order.created_by_user_id)
                return LifecycleOutcome(action="updated", order_id=order.id)
            if not mutation.applied:
                return LifecycleOutcome(action="duplicate", order_id=order.id)
            self._sync_credit_metafields(store, order.created_by_user_id)
            return LifecycleOutcome(action="updated", order_id=order.id)

        try:
            order = self._orders.create(
                shop_id=store.id,
                company_id=user.company_id,
                created_by_user_id=user.id,
                shopify_order_id=event.draft_order_id,
                order_total=event.total_price,
                payment_status=PaymentStatus.PENDING.value,
                order_status=OrderStatus.DRAFT.value,
            )
        except DuplicateOrderError:
            return LifecycleOutcome(action="duplicate", detail=event.draft_order_id)

        if to_money(order.order_total) > ZERO_MONEY:
            try:
                self._engine.deduct_tiered_credit(
                    user.company_id,
                    user.id,
                    order.id,
                    order.order_total,
                    TransactionType.CREDIT_RESERVED.value,
                )
            except InsufficientCreditError as exc:
                return self._flag_for_review(order, exc)
            self._sync_credit_metafields(store, user.id)
        return LifecycleOutcome(action="created", order_id=order.id)

    def handle_draft_order_deleted(self, event: DraftOrderDeletedEvent) -> LifecycleOutcome:
        store, order = self._find_external(event.shop_domain, event.draft_order_id)
        if order is None:
            return LifecycleOutcome(action="ignored", detail="unknown_order")
        if order.order_status == OrderStatus.CANCELLED.value:
            return LifecycleOutcome(action="duplicate", order_id=order.id)
        return self._close_draft(store, order, "Draft order deleted")

    # Portal commands

    def create_order(self, command: CreateOrderCommand) -> CreatedOrder:
        store = self._require_store(command.shop_domain)
        company = self._ledger.get_company(command.company_id)
        if company is None:
            raise NotFoundError("Company not found")
        if company.shop_id != store.id:
            raise PermissionDeniedError("Company does not belong to this store")
        if to_money(company.credit_limit or ZERO_MONEY) <= ZERO_MONEY:
            raise PermissionDeniedError("Company account has no credit limit")
        if not command.line_items:
            raise InvalidArgumentError("Order must contain at least one line item")

        user = self._ordering_user(store, company, command)
        total = to_money(command.total_amount)
        validation = self._engine.validate_tiered_credit(company.id, user.id, total)
        if not validation.can_create:
            raise validation.to_error()

        order = self._orders.create(
            shop_id=store.id,
            company_id=company.id,
            created_by_user_id=user.id,
            order_total=total,
            payment_status=PaymentStatus.PENDING.value,
            order_status=OrderStatus.DRAFT.value,
            notes=command.notes,
        )
        try:
            self._engine.deduct_tiered_credit(
                company.id,
                user.id,
                order.id,
                total,
                TransactionType.ORDER_CREATED.value,
            )
        except InsufficientCreditError:
            self._orders.delete(order)
            raise

        request = DraftOrderRequest(
            customer_id=command.customer_id,
            line_items=command.line_items,
            note="\n".join(
                part for part in (f"{settings.draft_order_note_prefix}{order.id}", command.notes) if part
            ),
            email=user.email,
            shipping_address=command.shipping_address,
        )
        try:
            result = self._platform.create_draft_order(store, request)
        except Exception as exc:
            self._roll_back_order(order, user, [str(exc)])
            raise UpstreamSyncError("Failed to create draft order", errors=[str(exc)]) from exc
        if result.errors or not result.draft_order_id:
            errors = result.errors or ["Draft order was not created"]
            self._roll_back_order(order, user, errors)
            raise UpstreamSyncError("Failed to create draft order", errors=errors)

        order.shopify_order_id = result.draft_order_id
        order.order_status = OrderStatus.SUBMITTED.value
        self._orders.save(order)
        log_event(
            logger,
            "order_created",
            order_id=order.id,
            company_id=company.id,
            user_id=user.id,
            amount=total,
            shopify_order_id=result.draft_order_id,
        )
        self._sync_credit_metafields(store, user.id)
        return CreatedOrder(
            order=order,
            draft_order_name=result.name,
            company_credit=self._engine.calculator.calculate_available_credit(company.id),
        )

    def cancel_order(
        self,
        shop_domain: str,
        order_id: str,
        *,
        cancelled_by: str | None = None,
        reason: str | None = None,
    ) -> CancelledOrder:
        store = self._require_store(shop_domain)
        order = self._require_order(store, order_id)
        if order.order_status == OrderStatus.CANCELLED.value:
            raise InvalidArgumentError("Order is already cancelled")
        if order.order_status in NON_CANCELLABLE_STATUSES:
            raise InvalidArgumentError(f"Cannot cancel order with status: {order.order_status}")

        restored = self._release_reservation(
            order,
            TransactionType.ORDER_CANCELLED.value,
            created_by=cancelled_by,
            notes=f"Order cancelled: {reason}" if reason else None,
        )
        order.order_status = OrderStatus.CANCELLED.value
        order.payment_status = PaymentStatus.CANCELLED.value
        order.remaining_balance = to_money(to_money(order.order_total) - to_money(order.paid_amount))
        if reason:
            _append_note(order, f"Cancelled: {reason}")
        self._orders.save(order)
        if restored > ZERO_MONEY:
            self._sync_credit_metafields(store, order.created_by_user_id)

        platform_errors: list[str] = []
        if gid_resource(order.shopify_order_id) == "DraftOrder":
            deleted = self._platform.delete_draft_order(store, order.shopify_order_id)
            platform_errors = deleted.errors
            if platform_errors:
                log_event(
                    logger,
                    "draft_order_delete_failed",
                    level=logging.WARNING,
                    order_id=order.id,
                    shopify_order_id=order.shopify_order_id,
                    errors=platform_errors,
                )
        return CancelledOrder(
            order=order,
            credit_restored=restored,
            platform_synced=not platform_errors,
            platform_errors=platform_errors,
        )

    def record_payment(
        self,
        shop_domain: str,
        order_id: str,
        amount,
        *,
        method: str | None = None,
        recorded_by: str | None = None,
        notes: str | None = None,
    ) -> RecordedPayment:
        value = to_money(amount)
        if value <= ZERO_MONEY:
            raise InvalidArgumentError("Payment amount must be greater than 0")

        store = self._require_store(shop_domain)
        order = self._require_order(store, order_id)
        if order.order_status == OrderStatus.CANCELLED.value:
            raise InvalidArgumentError("Cannot record payment for a cancelled order")
        if order.payment_status == PaymentStatus.PAID.value:
            raise InvalidArgumentError("Order is already fully paid")
        remaining = to_money(order.remaining_balance)
        if value > remaining:
            raise InvalidArgumentError(
                f"Payment amount ${value:.2f} exceeds remaining balance ${remaining:.2f}"
            )

        payment = self._orders.add_payment(order, amount=value, method=method, received_at=_now())
        fully_paid = value == remaining
        released = ZERO_MONEY
        credit_used = to_money(order.credit_used or ZERO_MONEY)
        if credit_used > ZERO_MONEY:
            mutation = self._engine.settle_credit(
                order.company_id,
                order.id,
                credit_used if fully_paid else min(value, credit_used),
                order.created_by_user_id,
                idempotency_key=f"{order.id}:{TransactionType.PAYMENT_RECEIVED.value}:{payment.id}",
                notes=notes or f"Payment received: ${value:.2f}",
                created_by=recorded_by,
            )
            released = mutation.amount

        order.paid_amount = to_money(to_money(order.paid_amount) + value)
        order.remaining_balance = to_money(to_money(order.order_total) - order.paid_amount)
        order.payment_status = PaymentStatus.PAID.value if fully_paid else PaymentStatus.PARTIAL.value
        if fully_paid:
            order.paid_at = _now()
        self._orders.save(order)
        if released > ZERO_MONEY:
            self._sync_credit_metafields(store, order.created_by_user_id)
        return RecordedPayment(order=order, payment_id=payment.id, amount=value, credit_released=released)

    # Credit limits

    def set_company_credit_limit(self, company_id: str, credit_limit, *, set_by: str) -> CompanyCredit:
        credit = self._engine.set_company_credit_limit(company_id, credit_limit, set_by=set_by)
        company = self._ledger.get_company(company_id)
        store = self._ledger.get_store(company.shop_id) if company is not None else None
        if store is not None:
            for user in self._ledger.list_company_users(company_id):
                self._sync_credit_metafields(store, user.id)
        return credit

    def set_user_credit_limit(self, user_id: str, credit_limit, *, set_by: str) -> UserCredit:
        credit = self._engine.set_user_credit_limit(user_id, credit_limit, set_by=set_by)
        user = self._ledger.get_user(user_id)
        store = self._ledger.get_store(user.shop_id) if user is not None and user.shop_id else None
        if store is not None:
            self._push_credit_metafields(store, user, credit)
        return credit

    # Helpers

    def _b2b_user(self, store: Store, customer_id: str | None) -> User | None:
        if not customer_id:
            return None
        user = self._ledger.get_user_by_customer(store.id, customer_id)
        if user is None or not user.company_id:
            return None
        return user

    def _ordering_user(self, store: Store, company: CompanyAccount, command: CreateOrderCommand) -> User:
        if command.user_id:
            user = self._ledger.get_user(command.user_id)
        else:
            user = self._ledger.get_user_by_customer(store.id, command.customer_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.company_id != company.id:
            raise PermissionDeniedError("User does not belong to this company")
        if not user.is_active or user.status != ACTIVE_USER_STATUS:
            raise PermissionDeniedError("User is not approved to place orders")
        return user

    def _find_external(self, shop_domain: str, external_id: str) -> tuple[Store | None, B2BOrder | None]:
        store = self._ledger.get_store_by_domain(shop_domain)
        if store is None:
            return None, None
        return store, self._orders.get_by_external(store.id, external_id)

    def _link_portal_order(self, store: Store, event: DraftOrderEvent) -> B2BOrder | None:
        order = self._orders.get(event.internal_order_id)
        if order is None or order.shop_id != store.id:
            return None
        if order.shopify_order_id not in (None, event.draft_order_id):
            return None
        if order.shopify_order_id is None:
            order.shopify_order_id = event.draft_order_id
            self._orders.save(order)
        return order

    def _require_store(self, shop_domain: str) -> Store:
        store = self._ledger.get_store_by_domain(shop_domain)
        if store is None:
            raise NotFoundError("Store not found")
        return store

    def _require_order(self, store: Store, order_id: str) -> B2BOrder:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.shop_id != store.id:
            raise PermissionDeniedError("Order does not belong to this store")
        return order

    def _release_reservation(
        self,
        order: B2BOrder,
        reason: str,
        *,
        created_by: str | None = None,
        notes: str | None = None,
    ) -> Decimal:
        credit_used = to_money(order.credit_used or ZERO_MONEY)
        if credit_used <= ZERO_MONEY:
            return ZERO_MONEY
        mutation = self._engine.restore_credit(
            order.company_id,
            order.id,
            None,
            order.created_by_user_id,
            reason,
            notes=notes,
            created_by=created_by,
        )
        return mutation.amount

    def _close_draft(self, store: Store, order: B2BOrder, note: str) -> LifecycleOutcome:
        released = self._release_reservation(order, TransactionType.ORDER_CANCELLED.value, notes=note)
        order.order_status = OrderStatus.CANCELLED.value
        order.payment_status = PaymentStatus.REFUNDED.value
        order.remaining_balance = to_money(to_money(order.order_total) - to_money(order.paid_amount))
        _append_note(order, note)
        self._orders.save(order)
        if released > ZERO_MONEY:
            self._sync_credit_metafields(store, order.created_by_user_id)
        return LifecycleOutcome(action="cancelled", order_id=order.id, detail=note)

    def _flag_for_review(self, order: B2BOrder, exc: InsufficientCreditError) -> LifecycleOutcome:
        order.requires_review = True
        _append_note(order, exc.message)
        self._orders.save(order)
        log_event(
            logger,
            "order_requires_review",
            level=logging.WARNING,
            order_id=order.id,
            company_id=order.company_id,
            limiting_factor=exc.limiting_factor,
            shortfall=exc.shortfall,
        )
        return LifecycleOutcome(action="review", order_id=order.id, detail=exc.message)

    def _roll_back_order(self, order: B2BOrder, user: User, errors: list[str]) -> None:
        log_event(
            logger,
            "order_sync_failed",
            level=logging.ERROR,
            order_id=order.id,
            company_id=order.company_id,
            errors=errors,
        )
        self._engine.restore_credit(
            order.company_id,
            order.id,
            order.order_total,
            user.id,
            TransactionType.ORDER_CANCELLED.value,
            notes="Order creation failed - platform sync error. Credit restored.",
        )
        self._orders.delete(order)

    def _sync_credit_metafields(self, store: Store, user_id: str) -> None:
        user = self._ledger.get_user(user_id)
        if user is None or not user.company_id:
            return
        credit = self._engine.calculator.calculate_user_available_credit(user.company_id, user.id)
        self._push_credit_metafields(store, user, credit)

    def _push_credit_metafields(self, store: Store, user: User, credit: UserCredit) -> None:
        """Mirror the user's credit onto the customer record. Failures are logged only."""
        if not user.shopify_customer_id:
            return
        try:
            result = self._platform.update_credit_metafields(store, user.shopify_customer_id, credit)
            errors = result.errors
        except Exception as exc:
            errors = [str(exc)]
        if errors:
            log_event(
                logger,
                "credit_metafield_sync_failed",
                level=logging.WARNING,
                user_id=user.id,
                company_id=user.company_id,
                errors=errors,
            )
