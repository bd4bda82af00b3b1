from dataclasses import dataclass
from decimal import Decimal

from b2bportal.core.money import ZERO_MONEY, to_money
from b2bportal.models.company import CompanyAccount, User
from b2bportal.services.credit_errors import NotFoundError
from b2bportal.services.ledger_store import LedgerStore


@dataclass(frozen=True)
class CompanyCredit:
    company_id: str
    credit_limit: Decimal
    used_credit: Decimal
    pending_credit: Decimal
    available_credit: Decimal


@dataclass(frozen=True)
class UserCredit:
    user_id: str
    user_credit_limit: Decimal | None
    user_credit_used: Decimal
    user_credit_available: Decimal
    company_credit_available: Decimal

    @property
    def has_user_limit(self) -> bool:
        return self.user_credit_limit is not None


class CreditCalculator:
    """Derives available credit from limits and outstanding orders. Never writes."""

    def __init__(self, ledger: LedgerStore):
        self._ledger = ledger

    def calculate_available_credit(self, company_id: str) -> CompanyCredit:
        company = self._ledger.get_company(company_id)
        if company is None:
            raise NotFoundError("Company not found")
        return self.company_credit(company)

    def calculate_user_available_credit(self, company_id: str, user_id: str) -> UserCredit:
        company_credit = self.calculate_available_credit(company_id)
        user = self._ledger.get_user(user_id)
        if user is None or user.company_id != company_id:
            raise NotFoundError("User not found")
        return self.user_credit(user, company_credit)

    def company_credit(self, company: CompanyAccount) -> CompanyCredit:
        used, pending = self._ledger.outstanding_credit(company.id)
        limit = to_money(company.credit_limit or ZERO_MONEY)
        return CompanyCredit(
            company_id=company.id,
            credit_limit=limit,
            used_credit=used,
            pending_credit=pending,
            available_credit=to_money(limit - used),
        )

    @staticmethod
    def user_credit(user: User, company_credit: CompanyCredit) -> UserCredit:
        used = to_money(user.user_credit_used or ZERO_MONEY)
        if user.user_credit_limit is None:
            return UserCredit(
                user_id=user.id,
                user_credit_limit=None,
                user_credit_used=used,
                user_credit_available=company_credit.available_credit,
                company_credit_available=company_credit.available_credit,
            )

        limit = to_money(user.user_credit_limit)
        return UserCredit(
            user_id=user.id,
            user_credit_limit=limit,
            user_credit_used=used,
            user_credit_available=min(to_money(limit - used), company_credit.available_credit),
            company_credit_available=company_credit.available_credit,
        )
