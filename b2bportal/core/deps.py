from fastapi import Depends
from sqlalchemy.orm import Session

from b2bportal.core.config import settings
from b2bportal.db.session import SessionLocal
from b2bportal.services.commerce_platform import CommercePlatform, get_commerce_platform
from b2bportal.services.credit_engine import CreditEngine
from b2bportal.services.ledger_store import SqlLedgerStore
from b2bportal.services.order_lifecycle import OrderLifecycleCoordinator
from b2bportal.services.order_repository import SqlOrderRepository


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_platform() -> CommercePlatform:
    return get_commerce_platform(settings.commerce_platform_default)


def get_ledger_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    return SqlLedgerStore(db)


def get_order_repository(db: Session = Depends(get_db)) -> SqlOrderRepository:
    return SqlOrderRepository(db)


def get_credit_engine(
    ledger: SqlLedgerStore = Depends(get_ledger_store),
    orders: SqlOrderRepository = Depends(get_order_repository),
) -> CreditEngine:
    return CreditEngine(ledger, orders)


def get_coordinator(
    ledger: SqlLedgerStore = Depends(get_ledger_store),
    orders: SqlOrderRepository = Depends(get_order_repository),
    engine: CreditEngine = Depends(get_credit_engine),
    platform: CommercePlatform = Depends(get_platform),
) -> OrderLifecycleCoordinator:
    return OrderLifecycleCoordinator(ledger, orders, engine, platform)
