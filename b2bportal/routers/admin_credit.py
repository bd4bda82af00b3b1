from fastapi import APIRouter, Depends

from b2bportal.core.api_docs import error_responses
from b2bportal.core.deps import get_coordinator, get_credit_engine
from b2bportal.core.money import money_float
from b2bportal.schemas.credit import (
    CompanyCreditLimitIn,
    CompanyCreditOut,
    LedgerVerificationOut,
    UserCreditLimitIn,
    UserCreditOut,
    company_credit_out,
    user_credit_out,
)
from b2bportal.services.credit_engine import CreditEngine
from b2bportal.services.order_lifecycle import OrderLifecycleCoordinator

router = APIRouter(prefix="/admin", tags=["admin"])


@router.put(
    "/companies/{company_id}/credit-limit",
    response_model=CompanyCreditOut,
    summary="Set a company's credit limit",
    responses=error_responses(400, 404, 422, 500),
)
def set_company_credit_limit(
    company_id: str,
    payload: CompanyCreditLimitIn,
    coordinator: OrderLifecycleCoordinator = Depends(get_coordinator),
):
    credit = coordinator.set_company_credit_limit(company_id, payload.credit_limit, set_by=payload.set_by)
    return company_credit_out(credit)


@router.put(
    "/users/{user_id}/credit-limit",
    response_model=UserCreditOut,
    summary="Set or clear a user's credit sub-limit",
    responses=error_responses(400, 404, 422, 500),
)
def set_user_credit_limit(
    user_id: str,
    payload: UserCreditLimitIn,
    coordinator: OrderLifecycleCoordinator = Depends(get_coordinator),
):
    credit = coordinator.set_user_credit_limit(user_id, payload.credit_limit, set_by=payload.set_by)
    return user_credit_out(credit)


@router.get(
    "/companies/{company_id}/ledger/verify",
    response_model=LedgerVerificationOut,
    summary="Replay the credit ledger against outstanding orders",
    responses=error_responses(404, 409, 500),
)
def verify_ledger(
    company_id: str,
    engine: CreditEngine = Depends(get_credit_engine),
):
    replay = engine.verify_ledger(company_id)
    return LedgerVerificationOut(
        company_id=replay.company_id,
        consistent=True,
        credit_limit=money_float(replay.credit_limit),
        transaction_count=replay.transaction_count,
        replayed_available_credit=money_float(replay.replayed_available),
        calculated_available_credit=money_float(replay.calculated_available),
    )
