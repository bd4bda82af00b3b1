from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from b2bportal.core.money import money_float
from b2bportal.models.credit import CreditTransaction
from b2bportal.schemas.common import PaginationMeta
from b2bportal.services.credit_calculator import CompanyCredit, UserCredit


class CompanyCreditOut(BaseModel):
    company_id: str
    credit_limit: float
    used_credit: float
    pending_credit: float
    available_credit: float


class UserCreditOut(BaseModel):
    user_id: str
    user_credit_limit: float | None = None
    user_credit_used: float
    user_credit_available: float
    company_credit_available: float
    has_user_limit: bool


class TieredCreditValidateIn(BaseModel):
    company_id: str
    user_id: str
    amount: Decimal

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "company_id": "company-id-here",
                "user_id": "user-id-here",
                "amount": 250.0,
            }
        }
    )


class TieredCreditValidationOut(BaseModel):
    can_create: bool
    limiting_factor: str
    required_amount: float
    available_credit: float
    shortfall: float
    message: str
    company: CompanyCreditOut
    user: UserCreditOut


class CreditTransactionOut(BaseModel):
    id: str
    sequence: int
    transaction_type: str
    order_id: str | None = None
    user_id: str | None = None
    credit_amount: float
    previous_balance: float
    new_balance: float
    notes: str | None = None
    created_by: str
    created_at: datetime | None = None


class CreditTransactionListOut(BaseModel):
    items: list[CreditTransactionOut]
    pagination: PaginationMeta


class CreditOrderSummaryOut(BaseModel):
    id: str
    order_number: str
    order_total: float
    credit_used: float
    payment_status: str
    order_status: str
    created_at: datetime | None = None


class CompanyCreditSummaryOut(BaseModel):
    company: CompanyCreditOut
    company_name: str
    recent_transactions: list[CreditTransactionOut]


class UserCreditSummaryOut(BaseModel):
    user: UserCreditOut
    display_name: str
    recent_orders: list[CreditOrderSummaryOut]


class CompanyCreditLimitIn(BaseModel):
    credit_limit: Decimal = Field(ge=0)
    set_by: str = Field(min_length=1)


class UserCreditLimitIn(BaseModel):
    credit_limit: Optional[Decimal] = Field(default=None, ge=0)
    set_by: str = Field(min_length=1)


class LedgerVerificationOut(BaseModel):
    company_id: str
    consistent: bool
    credit_limit: float
    transaction_count: int
    replayed_available_credit: float
    calculated_available_credit: float


def company_credit_out(credit: CompanyCredit) -> CompanyCreditOut:
    return CompanyCreditOut(
        company_id=credit.company_id,
        credit_limit=money_float(credit.credit_limit),
        used_credit=money_float(credit.used_credit),
        pending_credit=money_float(credit.pending_credit),
        available_credit=money_float(credit.available_credit),
    )


def user_credit_out(credit: UserCredit) -> UserCreditOut:
    return UserCreditOut(
        user_id=credit.user_id,
        user_credit_limit=money_float(credit.user_credit_limit) if credit.has_user_limit else None,
        user_credit_used=money_float(credit.user_credit_used),
        user_credit_available=money_float(credit.user_credit_available),
        company_credit_available=money_float(credit.company_credit_available),
        has_user_limit=credit.has_user_limit,
    )


def transaction_out(transaction: CreditTransaction) -> CreditTransactionOut:
    return CreditTransactionOut(
        id=transaction.id,
        sequence=transaction.sequence,
        transaction_type=transaction.transaction_type,
        order_id=transaction.order_id,
        user_id=transaction.user_id,
        credit_amount=money_float(transaction.credit_amount),
        previous_balance=money_float(transaction.previous_balance),
        new_balance=money_float(transaction.new_balance),
        notes=transaction.notes,
        created_by=transaction.created_by,
        created_at=transaction.created_at,
    )
