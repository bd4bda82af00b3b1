from decimal import Decimal
from typing import Any


class CreditError(Exception):
    status_code = 400
    code = "credit_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any] | None:
        return None


class NotFoundError(CreditError):
    status_code = 404
    code = "not_found"


class InvalidArgumentError(CreditError):
    status_code = 400
    code = "invalid_argument"


class PermissionDeniedError(CreditError):
    status_code = 403
    code = "forbidden"


class DuplicateOrderError(CreditError):
    status_code = 409
    code = "conflict"


class InsufficientCreditError(CreditError):
    status_code = 400
    code = "insufficient_credit"

    def __init__(
        self,
        message: str,
        *,
        limiting_factor: str,
        available: Decimal,
        required: Decimal,
    ):
        super().__init__(message)
        self.limiting_factor = limiting_factor
        self.available = available
        self.required = required
        self.shortfall = max(required - available, Decimal("0.00"))

    def details(self) -> dict[str, Any]:
        return {
            "limiting_factor": self.limiting_factor,
            "available_credit": float(self.available),
            "required_amount": float(self.required),
            "shortfall": float(self.shortfall),
        }


class UpstreamSyncError(CreditError):
    status_code = 502
    code = "upstream_sync_failed"

    def __init__(self, message: str, *, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def details(self) -> dict[str, Any] | None:
        if not self.errors:
            return None
        return {"upstream_errors": self.errors}


class LedgerInconsistencyError(CreditError):
    status_code = 409
    code = "ledger_inconsistency"

    def __init__(
        self,
        message: str,
        *,
        company_id: str,
        expected: Decimal | None = None,
        actual: Decimal | None = None,
    ):
        super().__init__(message)
        self.company_id = company_id
        self.expected = expected
        self.actual = actual

    def details(self) -> dict[str, Any] | None:
        if self.expected is None or self.actual is None:
            return None
        return {
            "company_id": self.company_id,
            "replayed_available_credit": float(self.expected),
            "calculated_available_credit": float(self.actual),
        }
