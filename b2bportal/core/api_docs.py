from typing import Any

from b2bportal.schemas.common import ErrorOut


# Examples mirror the codes raised by services/credit_errors.py.
_ERROR_EXAMPLES: dict[int, tuple[str, str, list[dict[str, Any]] | None]] = {
    400: (
        "insufficient_credit",
        "Insufficient credit: order requires $250.00 but only $200.00 is available",
        [{"limiting_factor": "company", "available_credit": 200.0, "required_amount": 250.0, "shortfall": 50.0}],
    ),
    401: ("unauthorized", "Invalid webhook signature", None),
    403: ("forbidden", "User does not belong to this company", None),
    404: ("not_found", "Company not found", None),
    409: (
        "ledger_inconsistency",
        "Credit ledger does not match outstanding orders",
        [{"company_id": "company-id", "replayed_available_credit": 700.0, "calculated_available_credit": 650.0}],
    ),
    422: ("validation_error", "Validation failed", [{"field": "amount", "message": "Input should be greater than 0"}]),
    500: ("internal_error", "Internal server error", None),
    502: (
        "upstream_sync_failed",
        "Failed to create draft order",
        [{"upstream_errors": ["Shopify request failed: timed out"]}],
    ),
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message, details = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error", None))
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": "/proxy/orders",
                            "details": details,
                        }
                    }
                }
            },
        }
    return responses
