"""Shopify webhook authentication and payload normalization."""
import base64
import hashlib
import hmac
from typing import Any, Callable

from b2bportal.core.config import settings
from b2bportal.core.money import parse_money
from b2bportal.services.commerce_platform import shopify_gid
from b2bportal.services.order_lifecycle import (
    DraftOrderDeletedEvent,
    DraftOrderEvent,
    LifecycleOutcome,
    OrderCancelledEvent,
    OrderCreatedEvent,
    OrderEditedEvent,
    OrderLifecycleCoordinator,
    OrderPaidEvent,
)


class WebhookPayloadError(ValueError):
    pass


def build_shopify_signature(payload_bytes: bytes, secret: str | None = None) -> str:
    digest = hmac.new(
        (secret or settings.shopify_api_secret).encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_signature(payload_bytes: bytes, signature_header: str | None) -> bool:
    if not signature_header:
        return False
    expected = build_shopify_signature(payload_bytes)
    return hmac.compare_digest(signature_header.strip(), expected)


def _required_id(payload: dict[str, Any], key: str = "id") -> Any:
    value = payload.get(key)
    if value in (None, ""):
        raise WebhookPayloadError(f"Payload is missing '{key}'")
    return value


def _resource_gid(payload: dict[str, Any], resource: str) -> str:
    graphql_id = payload.get("admin_graphql_api_id")
    if graphql_id:
        return str(graphql_id)
    return shopify_gid(resource, _required_id(payload))


def _customer_gid(payload: dict[str, Any]) -> str | None:
    customer = payload.get("customer") or {}
    if not isinstance(customer, dict) or customer.get("id") in (None, ""):
        return None
    return customer.get("admin_graphql_api_id") or shopify_gid("Customer", customer["id"])


def _total_price(payload: dict[str, Any], *, required: bool = False):
    raw = payload.get("total_price")
    if required and raw in (None, ""):
        raise WebhookPayloadError("Payload is missing 'total_price'")
    try:
        return parse_money(raw)
    except ValueError as exc:
        raise WebhookPayloadError(str(exc)) from exc


def parse_internal_order_id(note: str | None) -> str | None:
    """Extract the portal order id from a draft note written as ``<prefix><id>``."""
    prefix = settings.draft_order_note_prefix
    for line in (note or "").splitlines():
        line = line.strip()
        if line.startswith(prefix):
            candidate = line[len(prefix):].strip()
            return candidate or None
    return None


def parse_order_created(shop_domain: str, payload: dict[str, Any]) -> OrderCreatedEvent:
    return OrderCreatedEvent(
        shop_domain=shop_domain,
        order_id=_resource_gid(payload, "Order"),
        customer_id=_customer_gid(payload),
        total_price=_total_price(payload),
        financial_status=payload.get("financial_status"),
        fulfillment_status=payload.get("fulfillment_status"),
    )


def parse_order_paid(shop_domain: str, payload: dict[str, Any]) -> OrderPaidEvent:
    return OrderPaidEvent(shop_domain=shop_domain, order_id=_resource_gid(payload, "Order"))


def parse_order_edited(shop_domain: str, payload: dict[str, Any]) -> OrderEditedEvent:
    order_edit = payload.get("order_edit")
    if isinstance(order_edit, dict):
        return OrderEditedEvent(
            shop_domain=shop_domain,
            order_id=shopify_gid("Order", _required_id(order_edit, "order_id")),
        )
    return OrderEditedEvent(shop_domain=shop_domain, order_id=_resource_gid(payload, "Order"))


def parse_order_cancelled(shop_domain: str, payload: dict[str, Any]) -> OrderCancelledEvent:
    return OrderCancelledEvent(shop_domain=shop_domain, order_id=_resource_gid(payload, "Order"))


def parse_draft_order(shop_domain: str, payload: dict[str, Any]) -> DraftOrderEvent:
    return DraftOrderEvent(
        shop_domain=shop_domain,
        draft_order_id=_resource_gid(payload, "DraftOrder"),
        customer_id=_customer_gid(payload),
        total_price=_total_price(payload, required=True),
        is_b2b=payload.get("b2b?") is True,
        status=payload.get("status"),
        internal_order_id=parse_internal_order_id(payload.get("note")),
    )


def parse_draft_order_deleted(shop_domain: str, payload: dict[str, Any]) -> DraftOrderDeletedEvent:
    return DraftOrderDeletedEvent(
        shop_domain=shop_domain,
        draft_order_id=shopify_gid("DraftOrder", _required_id(payload)),
    )


WebhookHandler = Callable[[OrderLifecycleCoordinator, str, dict[str, Any]], LifecycleOutcome]


def _route(parser, handler_name: str) -> WebhookHandler:
    def handle(coordinator: OrderLifecycleCoordinator, shop_domain: str, payload: dict[str, Any]) -> LifecycleOutcome:
        event = parser(shop_domain, payload)
        return getattr(coordinator, handler_name)(event)

    return handle


WEBHOOK_TOPICS: dict[str, WebhookHandler] = {
    "orders/create": _route(parse_order_created, "handle_order_created"),
    "orders/paid": _route(parse_order_paid, "handle_order_paid"),
    "orders/edited": _route(parse_order_edited, "handle_order_edited"),
    "orders/updated": _route(parse_order_edited, "handle_order_edited"),
    "orders/cancelled": _route(parse_order_cancelled, "handle_order_cancelled"),
    "draft_orders/create": _route(parse_draft_order, "handle_draft_order_upserted"),
    "draft_orders/update": _route(parse_draft_order, "handle_draft_order_upserted"),
    "draft_orders/delete": _route(parse_draft_order_deleted, "handle_draft_order_deleted"),
}


def normalize_topic(value: str | None) -> str:
    """Accept both ``orders/create`` and ``orders_create`` spellings."""
    normalized = (value or "").strip().lower()
    if "/" not in normalized and "_" in normalized:
        resource, _, action = normalized.rpartition("_")
        normalized = f"{resource}/{action}"
    return normalized
