import json

from sqlalchemy import select

from b2bportal.models.order import B2BOrder
from b2bportal.models.webhook import WebhookDelivery
from b2bportal.services.webhook_adapters import (
    build_shopify_signature,
    normalize_topic,
    parse_internal_order_id,
)
from tests.factories import SHOP_DOMAIN, seed_account


def _send(client, topic: str, payload: dict, *, webhook_id: str | None = None, signature: str | None = None):
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Shop-Domain": SHOP_DOMAIN,
        "X-Shopify-Hmac-Sha256": signature or build_shopify_signature(body),
    }
    if webhook_id:
        headers["X-Shopify-Webhook-Id"] = webhook_id
    return client.post(f"/webhooks/{topic}", content=body, headers=headers)


def _order_payload(total: str = "300.00", financial_status: str = "pending") -> dict:
    return {
        "id": 5001,
        "admin_graphql_api_id": "gid://shopify/Order/5001",
        "customer": {"id": 7001},
        "total_price": total,
        "financial_status": financial_status,
        "fulfillment_status": None,
    }


def _available(client, company_id: str) -> float:
    res = client.get(f"/proxy/companies/{company_id}/credit")
    assert res.status_code == 200, res.text
    return res.json()["company"]["available_credit"]


def test_webhook_with_bad_signature_is_rejected(test_context):
    client, session_local = test_context
    seed_account(session_local)

    res = _send(client, "orders/create", _order_payload(), signature="not-a-signature")
    assert res.status_code == 401, res.text
    assert res.json()["error"]["code"] == "unauthorized"

    db = session_local()
    try:
        assert db.execute(select(B2BOrder)).scalars().all() == []
    finally:
        db.close()


def test_order_create_webhook_reserves_credit_once(test_context):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")

    first = _send(client, "orders/create", _order_payload(), webhook_id="wh-1")
    assert first.status_code == 200, first.text
    assert first.json()["action"] == "created"

    duplicate = _send(client, "orders/create", _order_payload(), webhook_id="wh-1")
    assert duplicate.status_code == 200, duplicate.text
    assert duplicate.json()["duplicate"] is True

    redelivered = _send(client, "orders_create", _order_payload(), webhook_id="wh-2")
    assert redelivered.status_code == 200, redelivered.text
    assert redelivered.json()["action"] == "duplicate"

    assert _available(client, account.company_id) == 700.0

    db = session_local()
    try:
        deliveries = db.execute(select(WebhookDelivery)).scalars().all()
    finally:
        db.close()
    assert sorted(item.webhook_id for item in deliveries) == ["wh-1", "wh-2"]


def test_order_paid_webhook_settles_credit(test_context):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")
    assert _send(client, "orders/create", _order_payload()).status_code == 200

    res = _send(client, "orders/paid", {"id": 5001, "admin_graphql_api_id": "gid://shopify/Order/5001"})
    assert res.status_code == 200, res.text
    assert res.json()["action"] == "paid"
    assert _available(client, account.company_id) == 1000.0

    verify_res = client.get(f"/admin/companies/{account.company_id}/ledger/verify")
    assert verify_res.status_code == 200, verify_res.text


def test_order_create_webhook_without_credit_is_acknowledged_for_review(test_context):
    client, session_local = test_context
    seed_account(session_local, credit_limit="100.00")

    res = _send(client, "orders/create", _order_payload("300.00"))
    assert res.status_code == 200, res.text
    assert res.json()["action"] == "review"

    db = session_local()
    try:
        order = db.execute(select(B2BOrder)).scalar_one()
    finally:
        db.close()
    assert order.requires_review is True


def test_draft_order_webhooks_reserve_and_release(test_context):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")
    draft = {
        "id": 9001,
        "admin_graphql_api_id": "gid://shopify/DraftOrder/9001",
        "customer": {"id": 7001},
        "total_price": "120.00",
        "status": "open",
        "b2b?": True,
    }

    created = _send(client, "draft_orders/create", draft)
    assert created.status_code == 200, created.text
    assert created.json()["action"] == "created"
    assert _available(client, account.company_id) == 880.0

    updated = _send(client, "draft_orders/update", {**draft, "total_price": "200.00"})
    assert updated.json()["action"] == "updated"
    assert _available(client, account.company_id) == 800.0

    deleted = _send(client, "draft_orders/delete", {"id": 9001})
    assert deleted.json()["action"] == "cancelled"
    assert _available(client, account.company_id) == 1000.0

    ignored = _send(client, "draft_orders/create", {**draft, "id": 9002, "admin_graphql_api_id": None, "b2b?": False})
    assert ignored.json()["action"] == "ignored"


def test_unsupported_or_malformed_webhooks_return_bad_request(test_context):
    client, session_local = test_context
    seed_account(session_local)

    unknown = _send(client, "products/create", {"id": 1})
    assert unknown.status_code == 400, unknown.text

    missing_total = _send(client, "draft_orders/create", {"id": 9001, "b2b?": True})
    assert missing_total.status_code == 400, missing_total.text


def test_topic_and_note_parsing():
    assert normalize_topic("orders_create") == "orders/create"
    assert normalize_topic("draft_orders_update") == "draft_orders/update"
    assert normalize_topic("Orders/Paid") == "orders/paid"
    assert parse_internal_order_id("B2B Order #abc-123\nDeliver to dock") == "abc-123"
    assert parse_internal_order_id("Customer note") is None
