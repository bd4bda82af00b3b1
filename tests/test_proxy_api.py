from sqlalchemy import select

from b2bportal.models.order import B2BOrder
from tests.factories import SHOP_DOMAIN, seed_account


def _order_payload(account, total: float = 400.0) -> dict:
    return {
        "shop_domain": SHOP_DOMAIN,
        "company_id": account.company_id,
        "customer_id": account.customer_id,
        "total_amount": total,
        "line_items": [{"variant_id": "gid://shopify/ProductVariant/4455", "quantity": 4}],
        "notes": "Deliver to loading bay 2",
    }


def _company_credit(client, company_id: str) -> dict:
    res = client.get(f"/proxy/companies/{company_id}/credit")
    assert res.status_code == 200, res.text
    return res.json()


def test_create_order_reserves_credit(test_context, stub_platform):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")

    res = client.post("/proxy/orders", json=_order_payload(account))
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["order"]["order_status"] == "submitted"
    assert body["order"]["credit_used"] == 400.0
    assert body["order"]["shopify_order_id"] in stub_platform.draft_orders
    assert body["company_credit"]["available_credit"] == 600.0

    summary = _company_credit(client, account.company_id)
    assert summary["company"]["used_credit"] == 400.0
    assert summary["company"]["pending_credit"] == 400.0
    assert len(summary["recent_transactions"]) == 1
    assert summary["recent_transactions"][0]["credit_amount"] == -400.0

    verify_res = client.get(f"/admin/companies/{account.company_id}/ledger/verify")
    assert verify_res.status_code == 200, verify_res.text
    assert verify_res.json()["consistent"] is True
    assert verify_res.json()["replayed_available_credit"] == 600.0


def test_create_order_beyond_company_credit_returns_shortfall(test_context):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="200.00")

    res = client.post("/proxy/orders", json=_order_payload(account, 500.0))
    assert res.status_code == 400, res.text
    error = res.json()["error"]
    assert error["code"] == "insufficient_credit"
    assert error["details"][0]["limiting_factor"] == "company"
    assert error["details"][0]["available_credit"] == 200.0
    assert error["details"][0]["shortfall"] == 300.0


def test_create_order_rolls_back_when_draft_creation_fails(test_context, stub_platform):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")
    stub_platform.fail_with = ["Customer is not assigned to a company location"]

    res = client.post("/proxy/orders", json=_order_payload(account))
    assert res.status_code == 502, res.text
    error = res.json()["error"]
    assert error["code"] == "upstream_sync_failed"
    assert error["details"][0]["upstream_errors"] == ["Customer is not assigned to a company location"]

    db = session_local()
    try:
        orders = db.execute(select(B2BOrder)).scalars().all()
    finally:
        db.close()
    assert orders == []

    assert _company_credit(client, account.company_id)["company"]["available_credit"] == 1000.0
    verify_res = client.get(f"/admin/companies/{account.company_id}/ledger/verify")
    assert verify_res.status_code == 200, verify_res.text


def test_validate_tiered_credit_reports_user_limit(test_context):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="10000.00", user_credit_limit="50.00")

    res = client.post(
        "/proxy/validate-tiered-credit",
        json={"company_id": account.company_id, "user_id": account.user_id, "amount": 100},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["can_create"] is False
    assert body["limiting_factor"] == "user"
    assert body["shortfall"] == 50.0
    assert body["user"]["has_user_limit"] is True

    invalid_res = client.post(
        "/proxy/validate-tiered-credit",
        json={"company_id": account.company_id, "user_id": account.user_id, "amount": 0},
    )
    assert invalid_res.status_code == 400, invalid_res.text
    assert invalid_res.json()["error"]["code"] == "invalid_argument"


def test_unknown_company_returns_not_found(test_context):
    client, _ = test_context

    res = client.get("/proxy/companies/does-not-exist/credit")
    assert res.status_code == 404, res.text
    assert res.json()["error"]["code"] == "not_found"


def test_payment_and_cancel_flow(test_context, stub_platform):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")

    first = client.post("/proxy/orders", json=_order_payload(account, 400.0)).json()["order"]
    second = client.post("/proxy/orders", json=_order_payload(account, 100.0)).json()["order"]

    pay_res = client.post(
        f"/proxy/orders/{first['id']}/payments",
        json={"shop_domain": SHOP_DOMAIN, "amount": 150.0, "method": "bank_transfer"},
    )
    assert pay_res.status_code == 200, pay_res.text
    assert pay_res.json()["order"]["payment_status"] == "partial"
    assert pay_res.json()["order"]["remaining_balance"] == 250.0
    assert pay_res.json()["credit_released"] == 150.0

    over_res = client.post(
        f"/proxy/orders/{first['id']}/payments",
        json={"shop_domain": SHOP_DOMAIN, "amount": 999.0},
    )
    assert over_res.status_code == 400, over_res.text

    cancel_res = client.post(
        f"/proxy/orders/{second['id']}/cancel",
        json={"shop_domain": SHOP_DOMAIN, "reason": "Duplicate order"},
    )
    assert cancel_res.status_code == 200, cancel_res.text
    assert cancel_res.json()["credit_restored"] == 100.0
    assert cancel_res.json()["order"]["order_status"] == "cancelled"
    assert stub_platform.deleted_drafts == [second["shopify_order_id"]]

    assert _company_credit(client, account.company_id)["company"]["available_credit"] == 750.0

    user_res = client.get(f"/proxy/users/{account.user_id}/credit")
    assert user_res.status_code == 200, user_res.text
    assert user_res.json()["user"]["user_credit_used"] == 250.0
    assert len(user_res.json()["recent_orders"]) == 2

    verify_res = client.get(f"/admin/companies/{account.company_id}/ledger/verify")
    assert verify_res.status_code == 200, verify_res.text


def test_credit_transactions_are_paginated_newest_first(test_context):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="1000.00")
    for total in (100.0, 200.0, 300.0):
        res = client.post("/proxy/orders", json=_order_payload(account, total))
        assert res.status_code == 201, res.text

    res = client.get(
        f"/proxy/companies/{account.company_id}/credit-transactions",
        params={"limit": 2, "offset": 0},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert [item["credit_amount"] for item in body["items"]] == [-300.0, -200.0]
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["has_next"] is True


def test_admin_credit_limit_updates(test_context, stub_platform):
    client, session_local = test_context
    account = seed_account(session_local, credit_limit="500.00")
    res = client.post("/proxy/orders", json=_order_payload(account, 300.0))
    assert res.status_code == 201, res.text

    company_res = client.put(
        f"/admin/companies/{account.company_id}/credit-limit",
        json={"credit_limit": 800, "set_by": "merchant-admin"},
    )
    assert company_res.status_code == 200, company_res.text
    assert company_res.json()["available_credit"] == 500.0

    too_low_res = client.put(
        f"/admin/users/{account.user_id}/credit-limit",
        json={"credit_limit": 100, "set_by": "merchant-admin"},
    )
    assert too_low_res.status_code == 400, too_low_res.text

    user_res = client.put(
        f"/admin/users/{account.user_id}/credit-limit",
        json={"credit_limit": 350, "set_by": "merchant-admin"},
    )
    assert user_res.status_code == 200, user_res.text
    assert user_res.json()["user_credit_available"] == 50.0
    mirrored = stub_platform.metafields[account.customer_id]
    assert mirrored["user_credit_limit"] == "350.00"
    assert mirrored["user_credit_available"] == "50.00"

    verify_res = client.get(f"/admin/companies/{account.company_id}/ledger/verify")
    assert verify_res.status_code == 200, verify_res.text
    assert verify_res.json()["transaction_count"] == 3
