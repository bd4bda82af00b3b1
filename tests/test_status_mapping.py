import pytest

from b2bportal.models.order import OrderStatus, PaymentStatus
from b2bportal.services.status_mapping import (
    map_financial_status,
    map_fulfillment_status,
    map_platform_statuses,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("paid", PaymentStatus.PAID),
        ("PARTIALLY_PAID", PaymentStatus.PARTIAL),
        ("refunded", PaymentStatus.CANCELLED),
        ("Voided", PaymentStatus.CANCELLED),
        ("authorized", PaymentStatus.PENDING),
        (None, PaymentStatus.PENDING),
    ],
)
def test_financial_status_mapping(value, expected):
    assert map_financial_status(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("fulfilled", OrderStatus.DELIVERED),
        ("partial", OrderStatus.PROCESSING),
        ("IN_PROGRESS", OrderStatus.PROCESSING),
        ("cancelled", OrderStatus.CANCELLED),
        ("unfulfilled", OrderStatus.SUBMITTED),
        (None, OrderStatus.SUBMITTED),
    ],
)
def test_fulfillment_status_mapping(value, expected):
    assert map_fulfillment_status(value) == expected


def test_cancelled_payment_cancels_the_order():
    assert map_platform_statuses("voided", "fulfilled") == (PaymentStatus.CANCELLED, OrderStatus.CANCELLED)
    assert map_platform_statuses("partially_paid", None) == (PaymentStatus.PARTIAL, OrderStatus.SUBMITTED)
