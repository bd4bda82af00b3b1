from sqlalchemy import text

from b2bportal.core.observability import (
    credit_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from b2bportal.core.config import settings
from b2bportal.db.session import engine
from b2bportal.routers import admin_credit, proxy_credit, proxy_orders, webhooks
from b2bportal.services.credit_errors import CreditError

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Tiered credit reservation and settlement for Shopify B2B companies.\n\n"
        "Storefront requests arrive through the app proxy (`/proxy/...`), "
        "platform events through signed webhooks (`/webhooks/{topic}`), "
        "and merchant staff manage limits under `/admin/...`."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "orders", "description": "Order creation, cancellation and payments on company credit."},
        {"name": "credit", "description": "Company and user credit balances and the credit ledger."},
        {"name": "admin", "description": "Credit limit management and ledger verification."},
        {"name": "webhooks", "description": "Shopify order and draft order webhooks."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(CreditError, credit_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(proxy_orders.router)
app.include_router(proxy_credit.router)
app.include_router(admin_credit.router)
app.include_router(webhooks.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
