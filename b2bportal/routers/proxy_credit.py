from fastapi import APIRouter, Depends, Query

from b2bportal.core.api_docs import error_responses
from b2bportal.core.config import settings
from b2bportal.core.deps import get_credit_engine, get_ledger_store, get_order_repository
from b2bportal.core.money import money_float
from b2bportal.schemas.common import PaginationMeta
from b2bportal.schemas.credit import (
    CompanyCreditSummaryOut,
    CreditOrderSummaryOut,
    CreditTransactionListOut,
    TieredCreditValidateIn,
    TieredCreditValidationOut,
    UserCreditSummaryOut,
    company_credit_out,
    transaction_out,
    user_credit_out,
)
from b2bportal.services.credit_engine import CreditEngine
from b2bportal.services.credit_errors import NotFoundError
from b2bportal.services.ledger_store import LedgerStore
from b2bportal.services.order_repository import OrderRepository

router = APIRouter(prefix="/proxy", tags=["credit"])


@router.post(
    "/validate-tiered-credit",
    response_model=TieredCreditValidationOut,
    summary="Check whether an amount fits within company and user credit",
    responses=error_responses(400, 404, 422, 500),
)
def validate_tiered_credit(
    payload: TieredCreditValidateIn,
    engine: CreditEngine = Depends(get_credit_engine),
):
    result = engine.validate_tiered_credit(payload.company_id, payload.user_id, payload.amount)
    return TieredCreditValidationOut(
        can_create=result.can_create,
        limiting_factor=result.limiting_factor,
        required_amount=money_float(result.required_amount),
        available_credit=money_float(result.available_credit),
        shortfall=money_float(result.shortfall),
        message=result.message,
        company=company_credit_out(result.company),
        user=user_credit_out(result.user),
    )


@router.get(
    "/companies/{company_id}/credit",
    response_model=CompanyCreditSummaryOut,
    summary="Company credit summary",
    responses=error_responses(404, 500),
)
def get_company_credit(
    company_id: str,
    engine: CreditEngine = Depends(get_credit_engine),
    ledger: LedgerStore = Depends(get_ledger_store),
):
    company = ledger.get_company(company_id)
    if company is None:
        raise NotFoundError("Company not found")
    credit = engine.calculator.company_credit(company)
    recent = ledger.list_transactions(company_id, limit=settings.credit_recent_transactions_limit)
    return CompanyCreditSummaryOut(
        company=company_credit_out(credit),
        company_name=company.name,
        recent_transactions=[transaction_out(item) for item in recent],
    )


@router.get(
    "/companies/{company_id}/credit-transactions",
    response_model=CreditTransactionListOut,
    summary="List credit ledger entries, newest first",
    responses=error_responses(404, 422, 500),
)
def list_credit_transactions(
    company_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    ledger: LedgerStore = Depends(get_ledger_store),
):
    if ledger.get_company(company_id) is None:
        raise NotFoundError("Company not found")

    total = ledger.count_transactions(company_id)
    items = ledger.list_transactions(company_id, limit=limit, offset=offset)
    count = len(items)
    return CreditTransactionListOut(
        items=[transaction_out(item) for item in items],
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/users/{user_id}/credit",
    response_model=UserCreditSummaryOut,
    summary="User credit summary",
    responses=error_responses(404, 500),
)
def get_user_credit(
    user_id: str,
    engine: CreditEngine = Depends(get_credit_engine),
    ledger: LedgerStore = Depends(get_ledger_store),
    orders: OrderRepository = Depends(get_order_repository),
):
    user = ledger.get_user(user_id)
    if user is None or not user.company_id:
        raise NotFoundError("User not found")
    credit = engine.calculator.calculate_user_available_credit(user.company_id, user.id)
    recent_orders = orders.list_recent(
        user.company_id,
        user_id=user.id,
        limit=settings.credit_recent_orders_limit,
    )
    return UserCreditSummaryOut(
        user=user_credit_out(credit),
        display_name=user.display_name,
        recent_orders=[
            CreditOrderSummaryOut(
                id=order.id,
                order_number=order.order_number,
                order_total=money_float(order.order_total),
                credit_used=money_float(order.credit_used),
                payment_status=order.payment_status,
                order_status=order.order_status,
                created_at=order.created_at,
            )
            for order in recent_orders
        ],
    )
