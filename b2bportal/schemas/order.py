from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from b2bportal.schemas.credit import CompanyCreditOut


class OrderLineItemIn(BaseModel):
    variant_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class OrderCreateIn(BaseModel):
    shop_domain: str = Field(min_length=1)
    company_id: str
    customer_id: str
    user_id: Optional[str] = None
    total_amount: Decimal
    line_items: list[OrderLineItemIn] = Field(min_length=1)
    shipping_address: Optional[dict[str, Any]] = None
    notes: Optional[str] = Field(default=None, max_length=400)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "shop_domain": "acme-wholesale.myshopify.com",
                "company_id": "company-id-here",
                "customer_id": "gid://shopify/Customer/7012345",
                "total_amount": 450.0,
                "line_items": [
                    {"variant_id": "gid://shopify/ProductVariant/4455", "quantity": 3},
                ],
                "notes": "Deliver to loading bay 2",
            }
        }
    )


class OrderOut(BaseModel):
    id: str
    order_number: str
    company_id: str
    created_by_user_id: str
    shopify_order_id: str | None = None
    order_total: float
    credit_used: float
    user_credit_used: float
    paid_amount: float
    remaining_balance: float
    payment_status: str
    order_status: str
    requires_review: bool
    notes: str | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None


class OrderCreateOut(BaseModel):
    order: OrderOut
    draft_order_name: str | None = None
    company_credit: CompanyCreditOut


class OrderCancelIn(BaseModel):
    shop_domain: str = Field(min_length=1)
    cancelled_by: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=200)


class OrderCancelOut(BaseModel):
    order: OrderOut
    credit_restored: float
    platform_synced: bool
    platform_errors: list[str] = Field(default_factory=list)


class OrderPaymentIn(BaseModel):
    shop_domain: str = Field(min_length=1)
    amount: Decimal
    method: Optional[str] = Field(default=None, max_length=40)
    recorded_by: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=200)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "shop_domain": "acme-wholesale.myshopify.com",
                "amount": 150.0,
                "method": "bank_transfer",
            }
        }
    )


class OrderPaymentOut(BaseModel):
    order: OrderOut
    payment_id: str
    amount: float
    credit_released: float
