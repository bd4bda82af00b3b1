"""Translation of platform financial/fulfillment statuses into B2B order statuses."""
from b2bportal.models.order import OrderStatus, PaymentStatus

_FINANCIAL_STATUS_MAP = {
    "paid": PaymentStatus.PAID,
    "partially_paid": PaymentStatus.PARTIAL,
    "refunded": PaymentStatus.CANCELLED,
    "voided": PaymentStatus.CANCELLED,
}

_FULFILLMENT_STATUS_MAP = {
    "fulfilled": OrderStatus.DELIVERED,
    "partial": OrderStatus.PROCESSING,
    "partially_fulfilled": OrderStatus.PROCESSING,
    "in_progress": OrderStatus.PROCESSING,
    "cancelled": OrderStatus.CANCELLED,
}


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def map_financial_status(value: str | None) -> PaymentStatus:
    return _FINANCIAL_STATUS_MAP.get(_normalize(value), PaymentStatus.PENDING)


def map_fulfillment_status(value: str | None) -> OrderStatus:
    return _FULFILLMENT_STATUS_MAP.get(_normalize(value), OrderStatus.SUBMITTED)


def map_platform_statuses(
    financial_status: str | None,
    fulfillment_status: str | None,
) -> tuple[PaymentStatus, OrderStatus]:
    """Map both statuses; a cancelled payment cancels the order regardless of fulfillment."""
    payment_status = map_financial_status(financial_status)
    if payment_status == PaymentStatus.CANCELLED:
        return payment_status, OrderStatus.CANCELLED
    return payment_status, map_fulfillment_status(fulfillment_status)
