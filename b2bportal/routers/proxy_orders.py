from fastapi import APIRouter, Depends, status

from b2bportal.core.api_docs import error_responses
from b2bportal.core.deps import get_coordinator
from b2bportal.core.money import money_float
from b2bportal.models.order import B2BOrder
from b2bportal.schemas.credit import company_credit_out
from b2bportal.schemas.order import (
    OrderCancelIn,
    OrderCancelOut,
    OrderCreateIn,
    OrderCreateOut,
    OrderOut,
    OrderPaymentIn,
    OrderPaymentOut,
)
from b2bportal.services.commerce_platform import DraftLineItem
from b2bportal.services.order_lifecycle import CreateOrderCommand, OrderLifecycleCoordinator

router = APIRouter(prefix="/proxy/orders", tags=["orders"])


def _order_out(order: B2BOrder) -> OrderOut:
    return OrderOut(
        id=order.id,
        order_number=order.order_number,
        company_id=order.company_id,
        created_by_user_id=order.created_by_user_id,
        shopify_order_id=order.shopify_order_id,
        order_total=money_float(order.order_total),
        credit_used=money_float(order.credit_used),
        user_credit_used=money_float(order.user_credit_used),
        paid_amount=money_float(order.paid_amount),
        remaining_balance=money_float(order.remaining_balance),
        payment_status=order.payment_status,
        order_status=order.order_status,
        requires_review=bool(order.requires_review),
        notes=order.notes,
        paid_at=order.paid_at,
        created_at=order.created_at,
    )


@router.post(
    "",
    response_model=OrderCreateOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a B2B order on credit",
    responses=error_responses(400, 403, 404, 409, 422, 500, 502),
)
def create_order(
    payload: OrderCreateIn,
    coordinator: OrderLifecycleCoordinator = Depends(get_coordinator),
):
    created = coordinator.create_order(
        CreateOrderCommand(
            shop_domain=payload.shop_domain,
            company_id=payload.company_id,
            customer_id=payload.customer_id,
            user_id=payload.user_id,
            total_amount=payload.total_amount,
            line_items=[
                DraftLineItem(variant_id=item.variant_id, quantity=item.quantity)
                for item in payload.line_items
            ],
            shipping_address=payload.shipping_address,
            notes=payload.notes,
        )
    )
    return OrderCreateOut(
        order=_order_out(created.order),
        draft_order_name=created.draft_order_name,
        company_credit=company_credit_out(created.company_credit),
    )


@router.post(
    "/{order_id}/cancel",
    response_model=OrderCancelOut,
    summary="Cancel an order and restore its credit",
    responses=error_responses(400, 403, 404, 422, 500),
)
def cancel_order(
    order_id: str,
    payload: OrderCancelIn,
    coordinator: OrderLifecycleCoordinator = Depends(get_coordinator),
):
    cancelled = coordinator.cancel_order(
        payload.shop_domain,
        order_id,
        cancelled_by=payload.cancelled_by,
        reason=payload.reason,
    )
    return OrderCancelOut(
        order=_order_out(cancelled.order),
        credit_restored=money_float(cancelled.credit_restored),
        platform_synced=cancelled.platform_synced,
        platform_errors=cancelled.platform_errors,
    )


@router.post(
    "/{order_id}/payments",
    response_model=OrderPaymentOut,
    summary="Record a payment against an order",
    responses=error_responses(400, 403, 404, 422, 500),
)
def record_payment(
    order_id: str,
    payload: OrderPaymentIn,
    coordinator: OrderLifecycleCoordinator = Depends(get_coordinator),
):
    recorded = coordinator.record_payment(
        payload.shop_domain,
        order_id,
        payload.amount,
        method=payload.method,
        recorded_by=payload.recorded_by,
        notes=payload.notes,
    )
    return OrderPaymentOut(
        order=_order_out(recorded.order),
        payment_id=recorded.payment_id,
        amount=money_float(recorded.amount),
        credit_released=money_float(recorded.credit_released),
    )
