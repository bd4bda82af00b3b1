from typing import Any

from pydantic import BaseModel, ConfigDict


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    count: int
    has_next: bool

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total": 42,
                "limit": 20,
                "offset": 0,
                "count": 20,
                "has_next": True,
            }
        }
    )


class ErrorDetailOut(BaseModel):
    code: str
    message: str
    request_id: str
    path: str
    details: list[dict[str, Any]] | None = None


class ErrorOut(BaseModel):
    error: ErrorDetailOut

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "insufficient_credit",
                    "message": "Insufficient company credit. Available: $200.00, Required: $500.00",
                    "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                    "path": "/proxy/orders",
                    "details": [
                        {
                            "limiting_factor": "company",
                            "available_credit": 200.0,
                            "required_amount": 500.0,
                            "shortfall": 300.0,
                        }
                    ],
                }
            }
        }
    )
