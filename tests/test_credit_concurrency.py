from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import b2bportal.models  # noqa: F401
from b2bportal.core.id_utils import generate_id, generate_order_number
from b2bportal.db.base import Base
from b2bportal.models.company import User
from b2bportal.models.order import B2BOrder, OrderStatus
from b2bportal.services.credit_engine import CreditEngine
from b2bportal.services.credit_errors import InsufficientCreditError
from b2bportal.services.ledger_store import SqlLedgerStore
from b2bportal.services.order_repository import SqlOrderRepository
from tests.factories import seed_account
from tests.fakes import InMemoryBackend


def _reserve(engine: CreditEngine, company_id: str, user_id: str, order_id: str) -> bool:
    try:
        engine.deduct_tiered_credit(company_id, user_id, order_id, Decimal("100.00"))
    except InsufficientCreditError:
        return False
    return True


def test_parallel_reservations_never_overdraw_company_credit():
    backend = InMemoryBackend()
    store = backend.add_store()
    company = backend.add_company(store, "1000.00")
    user = backend.add_user(company)
    engine = CreditEngine(backend, backend)
    orders = [backend.add_order(user, "100.00") for _ in range(20)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda order: _reserve(engine, company.id, user.id, order.id), orders))

    assert results.count(True) == 10
    assert results.count(False) == 10

    credit = engine.calculator.calculate_available_credit(company.id)
    assert credit.available_credit == Decimal("0.00")
    assert credit.used_credit == Decimal("1000.00")

    entries = backend.list_transactions(company.id, newest_first=False)
    assert [entry.sequence for entry in entries] == list(range(1, 11))
    assert all(entry.new_balance >= Decimal("0.00") for entry in entries)
    engine.verify_ledger(company.id)


def test_parallel_replays_of_one_reservation_apply_once():
    backend = InMemoryBackend()
    store = backend.add_store()
    company = backend.add_company(store, "1000.00")
    user = backend.add_user(company)
    engine = CreditEngine(backend, backend)
    order = backend.add_order(user, "100.00")

    with ThreadPoolExecutor(max_workers=8) as pool:
        mutations = list(
            pool.map(
                lambda _: engine.deduct_tiered_credit(company.id, user.id, order.id, "100.00"),
                range(12),
            )
        )

    assert sum(1 for mutation in mutations if mutation.applied) == 1
    assert order.credit_used == Decimal("100.00")
    assert backend.count_transactions(company.id) == 1


@pytest.fixture()
def file_session_local(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'credit.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    engine.dispose()


def _sql_engine(session) -> CreditEngine:
    return CreditEngine(SqlLedgerStore(session), SqlOrderRepository(session))


def _add_order(session_local, account, total: str) -> str:
    db = session_local()
    try:
        order = B2BOrder(
            id=generate_id(),
            order_number=generate_order_number(),
            shop_id=account.store_id,
            company_id=account.company_id,
            created_by_user_id=account.user_id,
            order_total=Decimal(total),
            remaining_balance=Decimal(total),
            order_status=OrderStatus.SUBMITTED.value,
        )
        db.add(order)
        db.commit()
        return order.id
    finally:
        db.close()


def test_user_tier_is_checked_against_usage_committed_by_another_session(file_session_local):
    account = seed_account(file_session_local, credit_limit="1000.00", user_credit_limit="150.00")
    first_id = _add_order(file_session_local, account, "100.00")
    second_id = _add_order(file_session_local, account, "100.00")

    session_a = file_session_local()
    session_b = file_session_local()
    try:
        held_user = session_b.get(User, account.user_id)
        assert held_user.user_credit_used == Decimal("0.00")

        _sql_engine(session_a).deduct_tiered_credit(account.company_id, account.user_id, first_id, "100.00")
        with pytest.raises(InsufficientCreditError) as exc_info:
            _sql_engine(session_b).deduct_tiered_credit(account.company_id, account.user_id, second_id, "100.00")
        assert exc_info.value.limiting_factor == "user"
    finally:
        session_a.close()
        session_b.close()

    check = file_session_local()
    try:
        assert check.get(User, account.user_id).user_credit_used == Decimal("100.00")
        assert _sql_engine(check).verify_ledger(account.company_id).replayed_available == Decimal("900.00")
    finally:
        check.close()


def test_adjust_replay_in_another_session_sees_the_committed_total(file_session_local):
    account = seed_account(file_session_local, credit_limit="1000.00")
    order_id = _add_order(file_session_local, account, "100.00")
    setup = file_session_local()
    try:
        _sql_engine(setup).deduct_tiered_credit(account.company_id, account.user_id, order_id, "100.00")
    finally:
        setup.close()

    session_a = file_session_local()
    session_b = file_session_local()
    try:
        held_order = session_b.get(B2BOrder, order_id)
        assert held_order.order_total == Decimal("100.00")

        grown = _sql_engine(session_a).adjust_reservation(account.company_id, account.user_id, order_id, "150.00")
        replay = _sql_engine(session_b).adjust_reservation(account.company_id, account.user_id, order_id, "150.00")

        assert grown.amount == Decimal("50.00")
        assert replay.outcome == "no_change"
        assert held_order.credit_used == Decimal("150.00")
    finally:
        session_a.close()
        session_b.close()

    check = file_session_local()
    try:
        replayed = _sql_engine(check).verify_ledger(account.company_id)
        assert replayed.replayed_available == Decimal("850.00")
        assert replayed.calculated_available == Decimal("850.00")
    finally:
        check.close()
