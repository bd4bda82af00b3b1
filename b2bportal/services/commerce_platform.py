import logging
from dataclasses import dataclass, field
from decimal import Decimal
from itertools import count
from typing import Any, Protocol

import httpx

from b2bportal.core.config import settings
from b2bportal.core.money import parse_money, to_money
from b2bportal.core.observability import log_event
from b2bportal.models.store import Store
from b2bportal.services.credit_calculator import UserCredit

logger = logging.getLogger("b2bportal.platform")

GID_PREFIX = "gid://shopify/"
CREDIT_METAFIELD_NAMESPACE = "b2b_credit"


def shopify_gid(resource: str, value: Any) -> str:
    text = str(value).strip()
    if text.startswith(GID_PREFIX):
        return text
    return f"{GID_PREFIX}{resource}/{text}"


def gid_resource(gid: str | None) -> str | None:
    if not gid or not gid.startswith(GID_PREFIX):
        return None
    return gid[len(GID_PREFIX):].split("/", 1)[0]


@dataclass(frozen=True)
class DraftLineItem:
    variant_id: str
    quantity: int


@dataclass(frozen=True)
class DraftOrderRequest:
    customer_id: str
    line_items: list[DraftLineItem]
    note: str
    email: str | None = None
    shipping_address: dict[str, Any] | None = None
    tags: list[str] = field(default_factory=lambda: ["b2b-portal"])


@dataclass(frozen=True)
class DraftOrderResult:
    draft_order_id: str | None = None
    name: str | None = None
    total_price: Decimal | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PlatformOrder:
    order_id: str
    total_price: Decimal
    financial_status: str | None
    fulfillment_status: str | None


@dataclass(frozen=True)
class PlatformOrderResult:
    order: PlatformOrder | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PlatformDeleteResult:
    deleted_id: str | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MetafieldSyncResult:
    keys: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def credit_metafields(credit: UserCredit) -> list[dict[str, str]]:
    """Customer metafields read by the cart and checkout credit checks."""
    figures = {
        "user_credit_used": credit.user_credit_used,
        "user_credit_available": credit.user_credit_available,
        "company_credit_available": credit.company_credit_available,
    }
    if credit.has_user_limit:
        figures["user_credit_limit"] = credit.user_credit_limit
    fields = [
        {
            "namespace": CREDIT_METAFIELD_NAMESPACE,
            "key": "is_b2b_customer",
            "value": "true",
            "type": "single_line_text_field",
        }
    ]
    for key, amount in figures.items():
        fields.append(
            {
                "namespace": CREDIT_METAFIELD_NAMESPACE,
                "key": key,
                "value": f"{to_money(amount):.2f}",
                "type": "number_decimal",
            }
        )
    return fields


class CommercePlatform(Protocol):
    name: str

    def create_draft_order(self, store: Store, request: DraftOrderRequest) -> DraftOrderResult:
        ...

    def delete_draft_order(self, store: Store, draft_order_id: str) -> PlatformDeleteResult:
        ...

    def fetch_order(self, store: Store, order_id: str) -> PlatformOrderResult:
        ...

    def update_credit_metafields(self, store: Store, customer_id: str, credit: UserCredit) -> MetafieldSyncResult:
        ...


class StubCommercePlatform:
    """In-process platform used for local development and tests."""

    name = "stub"

    def __init__(self, *, fail_with: list[str] | None = None):
        self.fail_with = list(fail_with or [])
        self.draft_orders: dict[str, DraftOrderRequest] = {}
        self.orders: dict[str, PlatformOrder] = {}
        self.deleted_drafts: list[str] = []
        self.metafields: dict[str, dict[str, str]] = {}
        self._ids = count(1001)

    def create_draft_order(self, store: Store, request: DraftOrderRequest) -> DraftOrderResult:
        if self.fail_with:
            return DraftOrderResult(errors=list(self.fail_with))
        draft_id = shopify_gid("DraftOrder", next(self._ids))
        self.draft_orders[draft_id] = request
        return DraftOrderResult(draft_order_id=draft_id, name=f"#D{draft_id.rsplit('/', 1)[-1]}")

    def delete_draft_order(self, store: Store, draft_order_id: str) -> PlatformDeleteResult:
        if self.fail_with:
            return PlatformDeleteResult(errors=list(self.fail_with))
        self.draft_orders.pop(draft_order_id, None)
        self.deleted_drafts.append(draft_order_id)
        return PlatformDeleteResult(deleted_id=draft_order_id)

    def fetch_order(self, store: Store, order_id: str) -> PlatformOrderResult:
        order = self.orders.get(order_id)
        if order is None:
            return PlatformOrderResult(errors=[f"Order {order_id} not found"])
        return PlatformOrderResult(order=order)

    def update_credit_metafields(self, store: Store, customer_id: str, credit: UserCredit) -> MetafieldSyncResult:
        if self.fail_with:
            return MetafieldSyncResult(errors=list(self.fail_with))
        fields = credit_metafields(credit)
        owner = shopify_gid("Customer", customer_id)
        self.metafields.setdefault(owner, {}).update({item["key"]: item["value"] for item in fields})
        return MetafieldSyncResult(keys=[item["key"] for item in fields])


_DRAFT_ORDER_CREATE = """
mutation draftOrderCreate($input: DraftOrderInput!) {
  draftOrderCreate(input: $input) {
    draftOrder { id name totalPriceSet { shopMoney { amount } } }
    userErrors { field message }
  }
}
"""

_DRAFT_ORDER_DELETE = """
mutation draftOrderDelete($input: DraftOrderDeleteInput!) {
  draftOrderDelete(input: $input) {
    deletedId
    userErrors { field message }
  }
}
"""

_METAFIELDS_SET = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { key namespace value }
    userErrors { field message }
  }
}
"""

_ORDER_QUERY = """
query order($id: ID!) {
  order(id: $id) {
    id
    displayFinancialStatus
    displayFulfillmentStatus
    totalPriceSet { shopMoney { amount } }
  }
}
"""


def _user_errors(payload: dict[str, Any] | None) -> list[str]:
    return [str(item.get("message")) for item in (payload or {}).get("userErrors") or [] if item.get("message")]


class ShopifyAdminPlatform:
    """Shopify Admin GraphQL client using the store's offline access token."""

    name = "shopify"

    def __init__(
        self,
        *,
        api_version: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_version = api_version or settings.shopify_api_version
        self.timeout_seconds = timeout_seconds or settings.shopify_request_timeout_seconds
        self._transport = transport

    def _graphql(self, store: Store, query: str, variables: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        if not store.access_token:
            return {}, ["Store has no access token"]
        url = f"https://{store.shop_domain}/admin/api/{self.api_version}/graphql.json"
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(
                    url,
                    json={"query": query, "variables": variables},
                    headers={"X-Shopify-Access-Token": store.access_token},
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as exc:
            log_event(
                logger,
                "platform_request_failed",
                level=logging.WARNING,
                shop_domain=store.shop_domain,
                error=str(exc),
            )
            return {}, [f"Shopify request failed: {exc}"]
        except ValueError:
            return {}, ["Shopify returned a non-JSON response"]

        errors = [str(item.get("message")) for item in body.get("errors") or [] if isinstance(item, dict)]
        return body.get("data") or {}, errors

    def create_draft_order(self, store: Store, request: DraftOrderRequest) -> DraftOrderResult:
        draft_input: dict[str, Any] = {
            "customerId": request.customer_id,
            "lineItems": [
                {"variantId": item.variant_id, "quantity": item.quantity}
                for item in request.line_items
            ],
            "note": request.note,
            "tags": request.tags,
        }
        if request.email:
            draft_input["email"] = request.email
        if request.shipping_address:
            draft_input["shippingAddress"] = request.shipping_address

        data, errors = self._graphql(store, _DRAFT_ORDER_CREATE, {"input": draft_input})
        if errors:
            return DraftOrderResult(errors=errors)
        payload = data.get("draftOrderCreate") or {}
        errors = _user_errors(payload)
        draft = payload.get("draftOrder")
        if errors or not draft:
            return DraftOrderResult(errors=errors or ["Draft order was not created"])
        amount = ((draft.get("totalPriceSet") or {}).get("shopMoney") or {}).get("amount")
        return DraftOrderResult(
            draft_order_id=draft.get("id"),
            name=draft.get("name"),
            total_price=parse_money(amount) if amount is not None else None,
        )

    def delete_draft_order(self, store: Store, draft_order_id: str) -> PlatformDeleteResult:
        data, errors = self._graphql(store, _DRAFT_ORDER_DELETE, {"input": {"id": draft_order_id}})
        if errors:
            return PlatformDeleteResult(errors=errors)
        payload = data.get("draftOrderDelete") or {}
        errors = _user_errors(payload)
        if errors:
            return PlatformDeleteResult(errors=errors)
        return PlatformDeleteResult(deleted_id=payload.get("deletedId"))

    def fetch_order(self, store: Store, order_id: str) -> PlatformOrderResult:
        data, errors = self._graphql(store, _ORDER_QUERY, {"id": order_id})
        if errors:
            return PlatformOrderResult(errors=errors)
        order = data.get("order")
        if not order:
            return PlatformOrderResult(errors=[f"Order {order_id} not found"])
        amount = ((order.get("totalPriceSet") or {}).get("shopMoney") or {}).get("amount")
        return PlatformOrderResult(
            order=PlatformOrder(
                order_id=order.get("id") or order_id,
                total_price=parse_money(amount),
                financial_status=order.get("displayFinancialStatus"),
                fulfillment_status=order.get("displayFulfillmentStatus"),
            )
        )

    def update_credit_metafields(self, store: Store, customer_id: str, credit: UserCredit) -> MetafieldSyncResult:
        owner = shopify_gid("Customer", customer_id)
        metafields = [{**item, "ownerId": owner} for item in credit_metafields(credit)]
        data, errors = self._graphql(store, _METAFIELDS_SET, {"metafields": metafields})
        if errors:
            return MetafieldSyncResult(errors=errors)
        payload = data.get("metafieldsSet") or {}
        errors = _user_errors(payload)
        if errors:
            return MetafieldSyncResult(errors=errors)
        return MetafieldSyncResult(keys=[item.get("key") for item in payload.get("metafields") or []])


_COMMERCE_PLATFORMS: dict[str, CommercePlatform] = {
    "stub": StubCommercePlatform(),
    "shopify": ShopifyAdminPlatform(),
}


def get_commerce_platform(name: str) -> CommercePlatform:
    normalized = (name or "").strip().lower()
    platform = _COMMERCE_PLATFORMS.get(normalized)
    if not platform:
        available = ", ".join(sorted(_COMMERCE_PLATFORMS.keys()))
        raise ValueError(f"Unknown commerce platform '{name}'. Available: {available}")
    return platform
