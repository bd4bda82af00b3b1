import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "B2B Credit Portal"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # SHOPIFY
    shopify_api_secret: str = "dev-shopify-secret"
    shopify_api_version: str = "2025-01"
    shopify_request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    commerce_platform_default: str = "stub"

    # CREDIT
    credit_recent_transactions_limit: int = Field(default=10, ge=1, le=100)
    credit_recent_orders_limit: int = Field(default=5, ge=1, le=50)
    draft_order_note_prefix: str = "B2B Order #"

    api_timeout_hint_ms: int = Field(default=300000, ge=1000, le=1_800_000)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator("commerce_platform_default", mode="before")
    @classmethod
    def normalize_platform_name(cls, value: str | None) -> str:
        cleaned = str(value or "").strip().lower()
        return cleaned or "stub"

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        weak_secrets = {"", "change_me", "dev-shopify-secret"}
        if self.shopify_api_secret.strip() in weak_secrets:
            raise ValueError("SHOPIFY_API_SECRET must be set in production")

        if self.commerce_platform_default == "stub":
            raise ValueError("COMMERCE_PLATFORM_DEFAULT cannot be 'stub' in production")

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
