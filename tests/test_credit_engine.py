from decimal import Decimal

import pytest

from b2bportal.models.credit import TransactionType
from b2bportal.models.order import PaymentStatus
from b2bportal.services.credit_engine import CreditEngine
from b2bportal.services.credit_errors import (
    InsufficientCreditError,
    InvalidArgumentError,
    LedgerInconsistencyError,
    NotFoundError,
)
from tests.fakes import InMemoryBackend


def _setup(credit_limit: str = "1000.00", user_credit_limit: str | None = None):
    backend = InMemoryBackend()
    store = backend.add_store()
    company = backend.add_company(store, credit_limit)
    user = backend.add_user(company, user_credit_limit=user_credit_limit)
    return backend, CreditEngine(backend, backend), company, user


def test_deduct_reserves_credit_and_logs_negative_entry():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "250.00")

    mutation = engine.deduct_tiered_credit(company.id, user.id, order.id, Decimal("250.00"))

    assert mutation.applied is True
    assert order.credit_used == Decimal("250.00")
    assert order.user_credit_used == Decimal("250.00")
    assert user.user_credit_used == Decimal("250.00")
    assert engine.calculator.calculate_available_credit(company.id).available_credit == Decimal("750.00")

    entries = backend.list_transactions(company.id)
    assert len(entries) == 1
    assert entries[0].credit_amount == Decimal("-250.00")
    assert entries[0].previous_balance == Decimal("1000.00")
    assert entries[0].new_balance == Decimal("750.00")
    assert entries[0].transaction_type == TransactionType.ORDER_CREATED.value


def test_company_limit_shortfall_is_reported():
    backend, engine, company, user = _setup()
    existing = backend.add_order(user, "800.00")
    engine.deduct_tiered_credit(company.id, user.id, existing.id, "800.00")
    order = backend.add_order(user, "500.00")

    with pytest.raises(InsufficientCreditError) as exc_info:
        engine.deduct_tiered_credit(company.id, user.id, order.id, "500.00")

    error = exc_info.value
    assert error.limiting_factor == "company"
    assert error.available == Decimal("200.00")
    assert error.shortfall == Decimal("300.00")
    assert order.credit_used == Decimal("0")
    assert backend.count_transactions(company.id) == 1


def test_user_sub_limit_binds_before_company():
    backend, engine, company, user = _setup("10000.00", user_credit_limit="50.00")

    validation = engine.validate_tiered_credit(company.id, user.id, "100.00")

    assert validation.can_create is False
    assert validation.limiting_factor == "user"
    assert validation.shortfall == Decimal("50.00")
    assert validation.user.user_credit_available == Decimal("50.00")


def test_user_without_sub_limit_reports_company_as_limiting_factor():
    backend, engine, company, user = _setup("300.00")

    validation = engine.validate_tiered_credit(company.id, user.id, "500.00")

    assert validation.can_create is False
    assert validation.limiting_factor == "company"
    assert validation.shortfall == Decimal("200.00")
    assert validation.user.has_user_limit is False


def test_user_available_never_exceeds_company_available():
    backend, engine, company, user = _setup("100.00", user_credit_limit="400.00")

    credit = engine.calculator.calculate_user_available_credit(company.id, user.id)

    assert credit.user_credit_available == Decimal("100.00")


def test_replayed_deduction_is_a_noop():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "120.00")

    first = engine.deduct_tiered_credit(company.id, user.id, order.id, "120.00")
    second = engine.deduct_tiered_credit(company.id, user.id, order.id, "120.00")

    assert first.applied is True
    assert second.applied is False
    assert second.outcome == "duplicate"
    assert order.credit_used == Decimal("120.00")
    assert backend.count_transactions(company.id) == 1


@pytest.mark.parametrize("amount", ["0", "-5.00", "abc"])
def test_invalid_amount_is_rejected(amount):
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "10.00")

    with pytest.raises(InvalidArgumentError):
        engine.deduct_tiered_credit(company.id, user.id, order.id, amount)


def test_unknown_company_raises_not_found():
    backend, engine, company, user = _setup()

    with pytest.raises(NotFoundError):
        engine.calculator.calculate_available_credit("missing-company")
    with pytest.raises(NotFoundError):
        engine.deduct_tiered_credit("missing-company", user.id, "missing-order", "10.00")


def test_restore_without_reservation_is_a_noop():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "75.00")

    mutation = engine.restore_credit(company.id, order.id, "75.00", user.id)

    assert mutation.applied is False
    assert mutation.outcome == "nothing_reserved"
    assert backend.count_transactions(company.id) == 0


def test_restore_is_capped_at_reserved_amount():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "90.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "90.00")

    mutation = engine.restore_credit(company.id, order.id, "500.00", user.id)

    assert mutation.amount == Decimal("90.00")
    assert order.credit_used == Decimal("0.00")
    assert user.user_credit_used == Decimal("0.00")
    assert engine.calculator.calculate_available_credit(company.id).available_credit == Decimal("1000.00")


def test_settlement_releases_reservation():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "400.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "400.00")

    mutation = engine.settle_credit(company.id, order.id, "400.00", user.id)
    order.payment_status = PaymentStatus.PAID.value

    assert mutation.transaction.transaction_type == TransactionType.PAYMENT_RECEIVED.value
    assert engine.calculator.calculate_available_credit(company.id).available_credit == Decimal("1000.00")
    engine.verify_ledger(company.id)


def test_adjust_reservation_moves_by_difference_and_replays_cleanly():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "100.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "100.00")

    grown = engine.adjust_reservation(company.id, user.id, order.id, "160.00")
    replay = engine.adjust_reservation(company.id, user.id, order.id, "160.00")
    shrunk = engine.adjust_reservation(company.id, user.id, order.id, "40.00")

    assert grown.amount == Decimal("60.00")
    assert replay.outcome == "no_change"
    assert shrunk.amount == Decimal("120.00")
    assert order.order_total == Decimal("40.00")
    assert order.credit_used == Decimal("40.00")
    assert order.remaining_balance == Decimal("40.00")
    engine.verify_ledger(company.id)


def test_adjust_reservation_beyond_credit_leaves_order_untouched():
    backend, engine, company, user = _setup("200.00")
    order = backend.add_order(user, "150.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "150.00")

    with pytest.raises(InsufficientCreditError):
        engine.adjust_reservation(company.id, user.id, order.id, "400.00")

    assert order.order_total == Decimal("150.00")
    assert order.credit_used == Decimal("150.00")


def test_verify_ledger_detects_drift():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "300.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "300.00")

    replay = engine.verify_ledger(company.id)
    assert replay.replayed_available == Decimal("700.00")
    assert replay.transaction_count == 1

    order.credit_used = Decimal("250.00")
    with pytest.raises(LedgerInconsistencyError) as exc_info:
        engine.verify_ledger(company.id)
    assert exc_info.value.details()["replayed_available_credit"] == 700.0


def test_credit_limit_changes_are_recorded_and_keep_ledger_consistent():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "300.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "300.00")

    credit = engine.set_company_credit_limit(company.id, "2000.00", set_by="admin")

    assert credit.available_credit == Decimal("1700.00")
    latest = backend.list_transactions(company.id, limit=1)[0]
    assert latest.transaction_type == TransactionType.CREDIT_ADJUSTMENT.value
    assert latest.credit_amount == Decimal("0.00")
    assert latest.new_balance == Decimal("1700.00")
    engine.verify_ledger(company.id)


def test_user_limit_below_current_usage_is_rejected():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "300.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "300.00")

    with pytest.raises(InvalidArgumentError):
        engine.set_user_credit_limit(user.id, "100.00", set_by="admin")

    credit = engine.set_user_credit_limit(user.id, "500.00", set_by="admin")
    assert credit.user_credit_available == Decimal("200.00")

    cleared = engine.set_user_credit_limit(user.id, None, set_by="admin")
    assert cleared.has_user_limit is False


def test_user_tier_binds_when_personal_headroom_is_short():
    backend, engine, company, user = _setup("1000.00", user_credit_limit="200.00")
    user.user_credit_used = Decimal("150.00")

    validation = engine.validate_tiered_credit(company.id, user.id, "60.00")

    assert validation.can_create is False
    assert validation.limiting_factor == "user"
    assert validation.available_credit == Decimal("50.00")
    assert validation.shortfall == Decimal("10.00")
    assert validation.company.available_credit == Decimal("1000.00")


def test_draft_total_changes_move_only_the_delta():
    backend, engine, company, user = _setup()
    order = backend.add_order(user, "100.00")
    engine.deduct_tiered_credit(company.id, user.id, order.id, "100.00")

    grown = engine.adjust_reservation(company.id, user.id, order.id, "150.00")
    shrunk = engine.adjust_reservation(company.id, user.id, order.id, "80.00")

    assert grown.amount == Decimal("50.00")
    assert shrunk.amount == Decimal("70.00")
    assert engine.calculator.calculate_available_credit(company.id).available_credit == Decimal("920.00")


def test_second_order_beyond_remaining_company_credit_is_refused():
    backend, engine, company, user = _setup("500.00")
    order = backend.add_order(user, "300.00")

    assert engine.validate_tiered_credit(company.id, user.id, "300.00").can_create is True
    engine.deduct_tiered_credit(company.id, user.id, order.id, "300.00", "order_created")
    assert engine.calculator.calculate_available_credit(company.id).available_credit == Decimal("200.00")

    validation = engine.validate_tiered_credit(company.id, user.id, "250.00")
    assert validation.can_create is False
    assert validation.limiting_factor == "company"
    assert validation.shortfall == Decimal("50.00")
